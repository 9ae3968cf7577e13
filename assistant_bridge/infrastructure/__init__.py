"""Infrastructure adapters."""

from .openai_client import OpenAIClientFactory

__all__ = ["OpenAIClientFactory"]
