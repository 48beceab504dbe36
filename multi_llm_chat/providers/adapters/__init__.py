"""
LLM Adapters

This package contains the wire-level adapters for each backend kind.
"""
from .api_adapter import APIAdapter
from .lmstudio_adapter import LMStudioAdapter
from .ollama_adapter import OllamaAdapter
from .openai_compatible import OpenAICompatibleAdapter

__all__ = [
    "APIAdapter",
    "LMStudioAdapter",
    "OllamaAdapter",
    "OpenAICompatibleAdapter",
]
