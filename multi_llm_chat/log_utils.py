"""Shared log/text helpers."""

from __future__ import annotations

from typing import Optional


def truncate_log_text(text: Optional[str], max_chars: int = 1600) -> str:
    """Trim text for logs while keeping head and tail context."""
    content = (text or "").replace("\r", "")
    if len(content) <= max_chars:
        return content
    head = int(max_chars * 0.7)
    tail = max_chars - head
    return f"{content[:head]}\n...[truncated]...\n{content[-tail:]}"
