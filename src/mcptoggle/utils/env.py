# ABOUTME: ${VAR} expansion for values read from the settings file
import os
import re
import warnings
from pathlib import Path

# ABOUTME: Matches ${VAR_NAME}; lowercase names are allowed for settings values
ENV_VAR_PATTERN = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)\}")


def expand_env_vars(value: str, environ: dict[str, str] | None = None) -> str:
    """Expand ${VAR} references, leaving unknown ones untouched.

    Args:
        value: String potentially containing ${VAR} references
        environ: Mapping to resolve from (defaults to os.environ)

    Returns:
        String with known variables substituted

    Examples:
        >>> expand_env_vars("${HOME}/work", {"HOME": "/home/ada"})
        '/home/ada/work'
    """
    source = os.environ if environ is None else environ

    def replace_var(match: re.Match[str]) -> str:
        var_name = match.group(1)
        if var_name in source:
            return source[var_name]
        warnings.warn(
            f"Environment variable '{var_name}' not found, keeping original",
            UserWarning,
            stacklevel=3,
        )
        return match.group(0)

    return ENV_VAR_PATTERN.sub(replace_var, value)


def expand_path(value: str, environ: dict[str, str] | None = None) -> Path:
    """Expand ${VAR} references and a leading ~ into an absolute path."""
    return Path(expand_env_vars(value, environ)).expanduser().absolute()
