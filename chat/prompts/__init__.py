from chat.prompts.formatter import (
    DEFAULT_TEMPLATE_TEXT,
    TURN_FORMAT,
    format_prompt,
    format_turn,
)

__all__ = ["DEFAULT_TEMPLATE_TEXT", "TURN_FORMAT", "format_prompt", "format_turn"]
