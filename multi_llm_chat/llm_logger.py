"""LLM interaction logger for debugging and auditing."""

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional, Sequence, Union

from .log_utils import truncate_log_text
from .providers.types import LLMResponse, RequestMessage


class LLMLogger:
    """Logs each request/response pair as one JSON record."""

    def __init__(self, log_dir: Union[str, Path] = "logs", max_chars: int = 4000):
        """Initialize LLM logger.

        Args:
            log_dir: Directory to store log files
            max_chars: Longest message/response text kept per record
        """
        self.log_dir = Path(log_dir)
        self.log_dir.mkdir(parents=True, exist_ok=True)
        self.max_chars = max_chars
        self.log_file = self.log_dir / f"llm_interactions_{datetime.now().strftime('%Y%m%d')}.log"

        self.logger = logging.getLogger("llm_interactions")
        self.logger.setLevel(logging.DEBUG)

        # Prevent duplicate handlers
        if not any(
            isinstance(h, logging.FileHandler) and Path(h.baseFilename) == self.log_file.absolute()
            for h in self.logger.handlers
        ):
            fh = logging.FileHandler(self.log_file, encoding='utf-8')
            fh.setLevel(logging.DEBUG)
            fh.setFormatter(logging.Formatter('%(message)s'))
            self.logger.addHandler(fh)

    def log_interaction(
        self,
        conversation_id: str,
        model_id: str,
        messages_sent: Sequence[RequestMessage],
        response: LLMResponse,
        extra: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Log a complete LLM interaction.

        Args:
            conversation_id: Conversation or thread identifier
            model_id: Participant the request went to
            messages_sent: Request messages
            response: Normalized response
            extra: Additional fields to include
        """
        log_entry: Dict[str, Any] = {
            "timestamp": datetime.now().isoformat(),
            "type": "INTERACTION",
            "conversation_id": conversation_id,
            "model_id": model_id,
            "request": {
                "message_count": len(messages_sent),
                "messages": [
                    {
                        "role": m.role,
                        "name": m.name,
                        "content": truncate_log_text(m.content, self.max_chars),
                    }
                    for m in messages_sent
                ],
            },
            "response": {
                "content": truncate_log_text(response.content, self.max_chars),
                "tool_calls": [c.function_name for c in response.tool_calls],
                "usage": response.usage.model_dump() if response.usage else None,
                "metadata": response.metadata.model_dump(exclude_none=True),
            },
        }
        if extra:
            log_entry["extra"] = extra

        self.logger.debug(json.dumps(log_entry, ensure_ascii=False))
        self.logger.info(
            f"LLM Call | {conversation_id} | {model_id} | "
            f"Sent: {len(messages_sent)} msgs | Received: {len(response.content)} chars"
        )

    def log_error(self, conversation_id: str, model_id: str, error: Exception, context: str = "") -> None:
        log_entry = {
            "timestamp": datetime.now().isoformat(),
            "type": "ERROR",
            "conversation_id": conversation_id,
            "model_id": model_id,
            "error": {
                "type": error.__class__.__name__,
                "message": str(error),
                "context": context,
            },
        }
        self.logger.error(json.dumps(log_entry, ensure_ascii=False))
