# File: src/planforge/llms/base.py
from abc import ABC, abstractmethod
from typing import Any


class BaseCompletionService(ABC):
    """Abstract text-completion service used by the planner and executor.

    Subclasses **must** implement ``ask()``: send one prompt and return the
    full text reply. Transport and model errors are raised as-is; the
    orchestration core never retries them.
    """

    @abstractmethod
    async def ask(self, prompt: str, model_id: str) -> str:
        raise NotImplementedError


class ChatCompletionService(BaseCompletionService):
    """Adapts a chat-style LLM client to ``BaseCompletionService``.

    The wrapped client must expose ``async call(*, model, messages, max_tokens, ...)``
    returning an object with ``choices[0].message.content`` (attribute- or
    dict-style), the shape OpenAI-compatible SDKs return.
    """

    def __init__(
        self,
        llm: Any,
        *,
        max_tokens: int = 4096,
        temperature: float = 0.2,
        system_prompt: str | None = None,
    ):
        self.llm = llm
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.system_prompt = system_prompt

    async def ask(self, prompt: str, model_id: str) -> str:
        messages: list[dict[str, Any]] = []
        if self.system_prompt:
            messages.append({"role": "system", "content": self.system_prompt})
        messages.append({"role": "user", "content": prompt})

        response = await self.llm.call(
            model=model_id,
            messages=messages,
            max_tokens=self.max_tokens,
            temperature=self.temperature,
        )
        content = self._extract_content_from_response(response)
        if content is None:
            raise ValueError("LLM returned empty response")
        return content

    # ------------------------------------------------------------------ #
    # Helpers                                                              #
    # ------------------------------------------------------------------ #

    @staticmethod
    def _extract_content_from_response(response: Any) -> str | None:
        """Best-effort extraction of text content from a provider response.

        Handles both dict-style and attribute-style response objects, and
        plain strings.
        """
        if response is None:
            return None
        if isinstance(response, str):
            return response

        choices = getattr(response, "choices", None)
        if choices is None and isinstance(response, dict):
            choices = response.get("choices")
        if not choices:
            return None

        choice = choices[0]
        msg = choice.get("message") if isinstance(choice, dict) else getattr(choice, "message", None)
        if msg is None:
            return None

        if isinstance(msg, dict):
            refusal = msg.get("refusal")
            content = msg.get("content")
        else:
            refusal = getattr(msg, "refusal", None)
            content = getattr(msg, "content", None)

        if refusal and isinstance(refusal, str):
            raise ValueError(f"LLM refused to answer: {refusal}")
        return content
