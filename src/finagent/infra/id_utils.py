"""Prefixed ID generation.

Request-scoped identifiers use a ``{prefix}_{random}`` format so the
origin of any ID in a log line or relayed message is obvious:

- ``trace_L7wBd4Fj9Ks2``  one chat completion request
- ``user_a8Kx3nQ9mP2r``   caller that did not send a ``userId``
- ``msg_kJ3pW7mD4bNx``    one relayed stream message
"""

import secrets
import string

_ALPHABET = string.ascii_letters + string.digits
_DEFAULT_LENGTH = 12

TRACE_PREFIX = "trace"
USER_PREFIX = "user"
MESSAGE_PREFIX = "msg"


def generate_id(prefix: str, length: int = _DEFAULT_LENGTH) -> str:
    """Return ``"{prefix}_{random}"`` with *length* alphanumeric characters."""
    suffix = "".join(secrets.choice(_ALPHABET) for _ in range(length))
    return f"{prefix}_{suffix}"


def new_trace_id() -> str:
    return generate_id(TRACE_PREFIX)


def new_user_id() -> str:
    return generate_id(USER_PREFIX)
