"""Multi-LLM chat core: several models in one conversation."""

__version__ = "0.1.0"
