"""Helpers for awaiting collaborators and bounding completion calls."""

import asyncio
import inspect
from typing import Any, Callable, Optional

from planforge.agents.errors import StepTimeoutError
from planforge.llms.base import BaseCompletionService


async def maybe_await(value: Any) -> Any:
    """Await *value* if it is awaitable, otherwise return it unchanged."""
    if inspect.isawaitable(value):
        return await value
    return value


async def resolve_text(provider: Optional[Callable[..., Any]], *args: Any) -> str:
    """Call an optional sync or async text provider; ``None`` yields ``""``."""
    if provider is None:
        return ""
    result = await maybe_await(provider(*args))
    return "" if result is None else str(result)


async def ask_completion(
    service: BaseCompletionService,
    prompt: str,
    model_id: str,
    timeout: Optional[float] = None,
) -> str:
    """Send one prompt, optionally bounded by *timeout* seconds."""
    if timeout is None:
        return await service.ask(prompt, model_id)
    try:
        return await asyncio.wait_for(service.ask(prompt, model_id), timeout=timeout)
    except asyncio.TimeoutError as e:
        raise StepTimeoutError(
            f"Completion call timed out after {timeout}s", timeout=timeout
        ) from e
