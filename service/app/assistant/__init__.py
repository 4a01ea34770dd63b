"""
General LLM assistant sub-bot (Groq).
"""

from .llm import LLMService, RateLimitedError, AVAILABLE_MODELS
from .reminders import ReminderScheduler
from .handler import AssistantHandler

__all__ = [
    "LLMService",
    "RateLimitedError",
    "AVAILABLE_MODELS",
    "ReminderScheduler",
    "AssistantHandler",
]
