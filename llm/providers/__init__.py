"""
LLM Provider implementations.
"""

from .base import TextGenerator
from .openai_provider import OpenAIProvider

__all__ = ["TextGenerator", "OpenAIProvider"]
