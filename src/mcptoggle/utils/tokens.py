# ABOUTME: Rough token estimates shown next to servers and memory files
# ABOUTME: Character-count heuristics only; never used for decisions
import json
import math
from typing import Any

CHARS_PER_TOKEN_TEXT = 4.0
CHARS_PER_TOKEN_JSON = 3.5
CHARS_PER_TOKEN_MARKDOWN = 3.8


def estimate_text_tokens(text: str) -> int:
    if not text:
        return 0
    return math.ceil(len(text) / CHARS_PER_TOKEN_TEXT)


def estimate_json_tokens(value: Any) -> int:
    """Estimate tokens for a JSON value from its pretty-printed size."""
    if not value:
        return 0
    return math.ceil(len(json.dumps(value, indent=2)) / CHARS_PER_TOKEN_JSON)


def estimate_markdown_tokens(markdown: str) -> int:
    if not markdown:
        return 0
    return math.ceil(len(markdown) / CHARS_PER_TOKEN_MARKDOWN)


def format_token_count(tokens: int) -> str:
    """Format a token count for display.

    Examples:
        >>> format_token_count(1234)
        '1.2K'
        >>> format_token_count(500)
        '500'
    """
    if tokens >= 1000:
        return f"{tokens / 1000:.1f}K"
    return str(tokens)
