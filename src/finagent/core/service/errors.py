"""Orchestrator-level failures surfaced to the HTTP boundary."""

import asyncio
from collections.abc import Mapping, Sequence

from finagent.core.llm.registry import remediation_hint

# Shown to end users instead of any provider error text.
FRIENDLY_APOLOGY = (
    "I'm sorry, I couldn't generate a response right now. Please try again."
)


class NoProviderConfigured(Exception):
    """No provider is available, so no completion can be attempted."""

    def __init__(self, missing_keys: Sequence[str] = (), message: str | None = None) -> None:
        self.missing_keys = list(missing_keys)
        self.hint = remediation_hint(self.missing_keys)
        super().__init__(message or f"No LLM provider is configured. {self.hint}")


class AllProvidersFailed(NoProviderConfigured):
    """Every available provider was attempted and failed."""

    def __init__(
        self, failures: Mapping[str, str], missing_keys: Sequence[str] = ()
    ) -> None:
        self.failures = dict(failures)
        detail = ", ".join(f"{name}: {reason}" for name, reason in self.failures.items())
        super().__init__(
            missing_keys, message=f"All LLM providers failed ({detail})."
        )


def user_facing_error(exc: BaseException) -> tuple[str, str]:
    """Map an exception to ``(message, code)`` safe to show end users.

    Only the no-provider case names configuration keys; every other
    failure becomes a generic apology.
    """
    if isinstance(exc, AllProvidersFailed):
        return FRIENDLY_APOLOGY, "ALL_PROVIDERS_FAILED"
    if isinstance(exc, NoProviderConfigured):
        return str(exc), "NO_PROVIDER_CONFIGURED"
    if isinstance(exc, TimeoutError):
        return "Request timed out.", "REQUEST_TIMEOUT"
    if isinstance(exc, (asyncio.CancelledError, GeneratorExit)):
        return "Request cancelled.", "CANCELLED"
    return FRIENDLY_APOLOGY, "PROCESSING_ERROR"
