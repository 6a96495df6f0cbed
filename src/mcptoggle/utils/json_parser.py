# ABOUTME: Safe JSON parse/stringify helpers that return results instead of raising
# ABOUTME: read_json_file collapses missing, unreadable and malformed files into None
import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable


@dataclass(frozen=True)
class ParseResult:
    """Result of a JSON parse or stringify operation.

    ABOUTME: ok=True carries value, ok=False carries error
    """
    ok: bool
    value: Any = None
    error: str | None = None


def parse(text: str) -> ParseResult:
    """Parse JSON text without raising.

    Args:
        text: JSON document

    Returns:
        ParseResult with the decoded value or a "JSON parse error: ..." message

    Examples:
        >>> parse('{"a": 1}').value
        {'a': 1}
        >>> parse("{invalid json}").ok
        False
    """
    try:
        return ParseResult(ok=True, value=json.loads(text))
    except (json.JSONDecodeError, TypeError) as e:
        return ParseResult(ok=False, error=f"JSON parse error: {e}")


def parse_and_validate(
    text: str,
    predicate: Callable[[Any], bool],
    error_message: str = "Validation failed",
) -> ParseResult:
    """Parse JSON text and check its shape with a caller-supplied predicate.

    ABOUTME: Parser failures keep the parser diagnostic
    ABOUTME: Predicate failures report error_message instead
    """
    result = parse(text)
    if not result.ok:
        return result

    if not predicate(result.value):
        return ParseResult(ok=False, error=error_message)

    return result


def stringify(value: Any, pretty: bool = False) -> ParseResult:
    """Serialize a value to JSON text without raising.

    ABOUTME: Cyclic structures and unserializable objects become ok=False
    ABOUTME: pretty output uses 2-space indentation
    """
    try:
        if pretty:
            text = json.dumps(value, indent=2, ensure_ascii=False)
        else:
            text = json.dumps(value, ensure_ascii=False)
        return ParseResult(ok=True, value=text)
    except (TypeError, ValueError, RecursionError) as e:
        return ParseResult(ok=False, error=f"JSON stringify error: {e}")


def is_plain_object(value: Any) -> bool:
    """Return True for a JSON object (dict), False for arrays, scalars and None."""
    return isinstance(value, dict)


def read_json_file(path: Path) -> Any | None:
    """Read and parse a JSON file, returning None on any failure.

    ABOUTME: Missing, unreadable and malformed files all return None
    ABOUTME: Use the config store's read() where the difference matters

    Args:
        path: Path to a JSON file

    Returns:
        Decoded value, or None
    """
    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError):
        return None

    result = parse(text)
    return result.value if result.ok else None
