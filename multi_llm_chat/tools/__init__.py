"""
Tools module - tool registry and executor used by the tool-call loop.
"""

from .registry import RegistryToolExecutor, ToolExecutor, ToolRegistry

__all__ = ["RegistryToolExecutor", "ToolExecutor", "ToolRegistry"]
