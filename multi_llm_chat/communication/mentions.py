"""@mention parsing."""

import re
from typing import Iterable, List

from ..models import Participant
from .types import ParsedMention

MENTION_PATTERN = re.compile(r"@([a-zA-Z0-9\-_]+)")


def parse_mentions(content: str, participants: Iterable[Participant]) -> List[ParsedMention]:
    """
    Find ``@Name`` tokens that refer to known participants.

    Matching is case-insensitive against display names (and ids). Results keep
    the order of appearance; unknown names are skipped silently.
    """
    roster = list(participants)
    lookup = {p.display_name.lower(): p for p in reversed(roster)}
    for participant in roster:
        lookup.setdefault(participant.id.lower(), participant)

    mentions: List[ParsedMention] = []
    for match in MENTION_PATTERN.finditer(content or ""):
        participant = lookup.get(match.group(1).lower())
        if participant is None:
            continue
        mentions.append(
            ParsedMention(
                model_id=participant.id,
                display_name=participant.display_name,
                start_index=match.start(),
                end_index=match.end(),
                full_mention=match.group(0),
            )
        )
    return mentions
