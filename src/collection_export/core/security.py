"""Random token generation for record ids and artifact file names.

Uses the ``secrets`` module so generated names cannot be guessed.
"""

import secrets
import string

DEFAULT_ALPHABET = string.ascii_letters + string.digits
RECORD_ID_ALPHABET = string.ascii_lowercase + string.digits
RECORD_ID_LENGTH = 15


def random_string(length: int, alphabet: str = DEFAULT_ALPHABET) -> str:
    """Generate a cryptographically random string.

    Args:
        length: Number of characters to generate.
        alphabet: Characters to draw from.

    Returns:
        The random string.

    Raises:
        ValueError: If length is negative or the alphabet is empty.
    """
    if length < 0:
        msg = f"length must be non-negative, got {length}"
        raise ValueError(msg)
    if not alphabet:
        msg = "alphabet must not be empty"
        raise ValueError(msg)
    return "".join(secrets.choice(alphabet) for _ in range(length))


def new_record_id() -> str:
    """Generate a new 15-character lowercase alphanumeric record id."""
    return random_string(RECORD_ID_LENGTH, RECORD_ID_ALPHABET)
