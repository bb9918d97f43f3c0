"""LLM helpers for compliance_watch."""

from .openai_client import OpenAIClientError, OpenAIJSONClient

__all__ = ["OpenAIClientError", "OpenAIJSONClient"]
