# File: src/planforge/llms/mock_llm.py
from collections import deque
from typing import Callable, Deque, Iterable, List, Tuple, Union

from .base import BaseCompletionService

Reply = Union[str, BaseException, Callable[[str], str]]


class MockCompletionService(BaseCompletionService):
    """Mock completion service for testing.

    * Replies are consumed in order, one per ``ask()``.
    * A reply may be a string, an exception instance (raised), or a
      callable receiving the prompt and returning the reply text.
    * When the script runs out, ``default_reply`` is returned if set,
      otherwise ``AssertionError`` is raised.
    * Every ``(prompt, model_id)`` pair is recorded in ``calls``.
    """

    def __init__(
        self,
        replies: Iterable[Reply] = (),
        *,
        default_reply: str | None = None,
    ):
        self._replies: Deque[Reply] = deque(replies)
        self.default_reply = default_reply
        self.calls: List[Tuple[str, str]] = []

    @property
    def call_count(self) -> int:
        return len(self.calls)

    @property
    def prompts(self) -> List[str]:
        return [prompt for prompt, _ in self.calls]

    def queue(self, *replies: Reply) -> None:
        """Append more scripted replies."""
        self._replies.extend(replies)

    async def ask(self, prompt: str, model_id: str) -> str:
        self.calls.append((prompt, model_id))

        if self._replies:
            reply = self._replies.popleft()
        elif self.default_reply is not None:
            reply = self.default_reply
        else:
            raise AssertionError(
                f"MockCompletionService has no reply scripted for call {self.call_count}"
            )

        if isinstance(reply, BaseException):
            raise reply
        if callable(reply):
            return reply(prompt)
        return reply
