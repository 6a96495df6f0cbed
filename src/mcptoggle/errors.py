# ABOUTME: Error taxonomy shared by the engine, blocking layer and migrations
# ABOUTME: Every message names the entry or file that failed
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from mcptoggle.utils.validation import ValidationError


class McpToggleError(Exception):
    """Base class for all mcp-toggle failures."""


class MalformedConfigError(McpToggleError):
    """Config file exists but cannot be parsed or fails shape validation."""

    def __init__(self, path: Path, detail: str) -> None:
        self.path = path
        self.detail = detail
        super().__init__(f"Malformed config {path}: {detail}")


class NotFoundError(McpToggleError):
    """Target entry, override or file is absent."""


class NotBlockedError(McpToggleError):
    """Original config requested from an entry that is not blocked."""


class WriteFailureError(McpToggleError):
    """Atomic write failed; the previous file content has been restored."""

    def __init__(self, path: Path, detail: str) -> None:
        self.path = path
        self.detail = detail
        super().__init__(f"Failed to write {path}: {detail}")


class ValidationFailureError(McpToggleError):
    """Input record violates a model invariant."""

    def __init__(self, message: str, errors: "list[ValidationError] | None" = None) -> None:
        self.errors = list(errors) if errors else []
        super().__init__(message)


class InvalidMigrationError(McpToggleError):
    """Migration selection or conflict resolutions are not acceptable."""

    def __init__(self, message: str, errors: list[str] | None = None) -> None:
        self.errors = list(errors) if errors else []
        super().__init__(message)
