"""Trigger-phrase classification of free-text replies.

Matching is deliberately literal: a category matches when any of its phrases
is a substring of the lower-cased, trimmed message. Categories are checked
independently by callers, which test affirmative before negative.
"""

import re
from typing import Iterable, Optional

from ..utils.prompts import READY_SENTINEL

COMPLETION_TRIGGERS = [
    "that's all",
    'thats all',
    'looks good',
    'ready',
    'generate spec',
    'done',
    'no more questions',
    'nothing else',
    "that's it",
    'thats it',
    'go ahead',
    'ship it',
]

DECISION_AFFIRMATIVE_TRIGGERS = [
    'yes',
    'yep',
    'yeah',
    'sure',
    'ok',
    'create ticket',
    'create jira',
    'make ticket',
    'make jira',
    'go ahead',
    'do it',
    'please',
    'retry',
]

DECISION_NEGATIVE_TRIGGERS = [
    'no',
    'nope',
    'nah',
    'skip',
    'not now',
    'no thanks',
    'not needed',
    "don't",
    'dont',
    'cancel',
]

MODE_SWITCH_TRIGGERS = [
    'create a spec',
    'generate a spec',
    'make a spec',
    'create spec',
    'generate spec',
    'make spec',
    'turn this into a task',
    'convert to task',
    'switch to task mode',
    'start a task',
    'create a task',
    "let's create a spec",
    "let's make a spec",
    'need a spec',
    'spec this',
]

SKIP_SELECTION_WORDS = {'skip', 'none'}
SKIP_REPORTER_WORDS = SKIP_SELECTION_WORDS | {'default'}

_LEADING_INTEGER = re.compile(r"^\s*(\d+)")


def normalize(text: Optional[str]) -> str:
    return (text or "").lower().strip()


def _matches_any(text: Optional[str], triggers: Iterable[str]) -> bool:
    normalized = normalize(text)
    return any(trigger in normalized for trigger in triggers)


def is_completion_request(text: Optional[str]) -> bool:
    """Human says they are done answering questions."""
    return _matches_any(text, COMPLETION_TRIGGERS)


def is_decision_affirmative(text: Optional[str]) -> bool:
    """Human accepts the ticket-creation offer."""
    return _matches_any(text, DECISION_AFFIRMATIVE_TRIGGERS)


def is_decision_negative(text: Optional[str]) -> bool:
    """Human declines the ticket-creation offer."""
    return _matches_any(text, DECISION_NEGATIVE_TRIGGERS)


def is_mode_switch_request(text: Optional[str]) -> bool:
    """Human wants to turn a question thread into a task specification."""
    return _matches_any(text, MODE_SWITCH_TRIGGERS)


def is_ready_for_spec(assistant_text: Optional[str]) -> bool:
    """Assistant output carries the ready sentinel."""
    return READY_SENTINEL in (assistant_text or "")


def strip_ready_sentinel(assistant_text: str) -> str:
    return (assistant_text or "").replace(READY_SENTINEL, "").strip()


def is_skip_selection(text: Optional[str], allow_default: bool = False) -> bool:
    """Exact skip words used while a numbered menu is on offer."""
    words = SKIP_REPORTER_WORDS if allow_default else SKIP_SELECTION_WORDS
    return normalize(text) in words


def parse_numeric_selection(text: Optional[str], upper_bound: int) -> Optional[int]:
    """
    Parse a numbered-menu reply.

    Args:
        text: Human reply, e.g. "2" or "2. Sprint 14"
        upper_bound: Number of options on offer (N)

    Returns:
        Zero-based index for a leading integer in [1, N], otherwise None
    """
    match = _LEADING_INTEGER.match(text or "")
    if not match:
        return None

    value = int(match.group(1))
    if 1 <= value <= upper_bound:
        return value - 1
    return None
