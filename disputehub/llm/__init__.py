"""
LLM Module
==========

OpenRouter client used to draft document text.

Environment Variables:
- OPENROUTER_API_KEY: Required for drafted documents
- OPENROUTER_MODEL: Model (default: openai/gpt-4o-mini)
"""

from .openrouter_base import OpenRouterBaseClient, LLMCallResult

__all__ = [
    "OpenRouterBaseClient",
    "LLMCallResult",
]
