from .llm import LLMClient, LLMError, RetryingLLM, JSONCompletionService, parse_json_response
from .offline import OfflineLLM

__all__ = [
    "LLMClient", "LLMError", "RetryingLLM", "JSONCompletionService", "parse_json_response",
    "OfflineLLM",
]
