"""Per-user single-flight primitives: abstract backend and exceptions."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class CompletionInProgress(Exception):
    """Raised when the user already has a completion running."""

    def __init__(self, user_id: str) -> None:
        super().__init__(
            "A response is already being generated for this user. "
            "Wait for it to finish and try again."
        )
        self.user_id = user_id


# ---------------------------------------------------------------------------
# Abstract backend
# ---------------------------------------------------------------------------


class UserLockBackend(ABC):
    """Interface for keyed mutex backends."""

    @abstractmethod
    async def acquire(self, key: str, timeout: float) -> Any | None:
        """Wait up to *timeout* seconds for *key*.

        Returns:
            An opaque token to pass to ``release``, or ``None`` when the
            key stayed held for the whole timeout.
        """

    @abstractmethod
    async def release(self, key: str, token: Any) -> None:
        """Release *key* held under *token*."""

    @abstractmethod
    async def aclose(self) -> None:
        """Release any resources held by the backend."""
