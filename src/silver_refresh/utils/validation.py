"""
Input validation utilities for refresh configuration.

Schema names end up in dynamically composed SQL, and the chunk size bounds
memory per insert round-trip, so both are checked before use.
"""

import os
import re


class ValidationError(ValueError):
    """Raised when input validation fails."""
    pass


MAX_CHUNK_SIZE = 100_000
DEFAULT_CHUNK_SIZE = 1000


IDENTIFIER_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

# PostgreSQL truncates longer names (NAMEDATALEN - 1)
MAX_IDENTIFIER_LENGTH = 63


def sanitize_sql_identifier(identifier: str, field_name: str = "identifier") -> str:
    """
    Check that a schema, relation or column name is a plain SQL identifier.

    Surrounding whitespace is stripped. Quoted identifiers are not accepted.

    Raises:
        ValidationError: If the name is empty, too long or not a plain identifier

    Examples:
        >>> sanitize_sql_identifier(" silver ")
        'silver'
    """
    if not isinstance(identifier, str) or not identifier.strip():
        raise ValidationError(f"{field_name} must be a non-empty string")

    identifier = identifier.strip()
    if len(identifier) > MAX_IDENTIFIER_LENGTH:
        raise ValidationError(
            f"{field_name} is longer than {MAX_IDENTIFIER_LENGTH} characters: {identifier!r}"
        )
    if not IDENTIFIER_PATTERN.match(identifier):
        raise ValidationError(
            f"{field_name} {identifier!r} is not a plain SQL identifier "
            "(letters, digits and underscores, not starting with a digit)"
        )
    return identifier


def validate_chunk_size(chunk_size: int, field_name: str = "chunk_size", max_size: int = MAX_CHUNK_SIZE) -> int:
    """
    Validate an insert chunk size.

    Args:
        chunk_size: Rows per executemany round-trip
        field_name: Name of the field (for error messages)
        max_size: Upper bound

    Returns:
        The validated chunk size

    Raises:
        ValidationError: If not an integer in 1..max_size
    """
    if isinstance(chunk_size, bool) or not isinstance(chunk_size, int):
        raise ValidationError(f"{field_name} must be an integer")

    if chunk_size < 1:
        raise ValidationError(f"{field_name} must be at least 1")

    if chunk_size > max_size:
        raise ValidationError(f"{field_name} exceeds maximum of {max_size}")

    return chunk_size


def schema_from_env(env_var: str, default: str) -> str:
    """Read a schema name from the environment and validate it."""
    return sanitize_sql_identifier(os.getenv(env_var, default), field_name=env_var)


def chunk_size_from_env(env_var: str = "LOAD_CHUNK_SIZE") -> int:
    """Read the insert chunk size from the environment and validate it."""
    raw = os.getenv(env_var)
    if raw is None or not raw.strip():
        return DEFAULT_CHUNK_SIZE
    try:
        value = int(raw)
    except ValueError:
        raise ValidationError(f"{env_var} must be an integer, got {raw!r}")
    return validate_chunk_size(value, field_name=env_var)
