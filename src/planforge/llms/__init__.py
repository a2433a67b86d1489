from .base import BaseCompletionService, ChatCompletionService
from .mock_llm import MockCompletionService

__all__ = ["BaseCompletionService", "ChatCompletionService", "MockCompletionService"]
