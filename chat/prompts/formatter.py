"""Prompt and transcript builders.

Values are inserted verbatim: no escaping and no truncation. A template is
validated when it is loaded, so formatting a ``PromptTemplate`` cannot fail.
"""
from __future__ import annotations

from chat.models import PromptTemplate

TURN_FORMAT = "{}\n\nHuman: {}\n\nAssistant: {}"

DEFAULT_TEMPLATE_TEXT = "{}{}\n\nHuman: {}\n\nAssistant:"


def format_prompt(template: PromptTemplate, prior_history: str, new_message: str) -> str:
    """Fill the template slots in order: prose, prior history, new message."""
    return template.text.format(template.prose, prior_history, new_message)


def format_turn(prior_history: str, human_message: str, completion: str) -> str:
    """Append one human/assistant exchange to the running transcript."""
    return TURN_FORMAT.format(prior_history, human_message, completion)
