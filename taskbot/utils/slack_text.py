"""Helpers for Slack message markup."""

import re
from typing import List

# <@U12345> or <@U12345|display-name>
MENTION_PATTERN = re.compile(r"<@([A-Z0-9]+)(?:\|[^>]*)?>", re.IGNORECASE)


def strip_mentions(text: str) -> str:
    """Remove user mention markup and surrounding whitespace."""
    return MENTION_PATTERN.sub("", text or "").strip()


def find_mentions(text: str) -> List[str]:
    """Return the user IDs mentioned in a message, in order."""
    return [match.group(1).upper() for match in MENTION_PATTERN.finditer(text or "")]
