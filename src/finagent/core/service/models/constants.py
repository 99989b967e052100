"""Event type and provider role constants."""

# ---------------------------------------------------------------------------
# Completion / relayed stream message types
# ---------------------------------------------------------------------------

EVENT_TYPE_TOKEN = "token"
EVENT_TYPE_COMPLETE = "complete"
EVENT_TYPE_ERROR = "error"
EVENT_TYPE_PROVIDER_SWITCH = "provider_switch"

TERMINAL_EVENT_TYPES = frozenset({EVENT_TYPE_COMPLETE, EVENT_TYPE_ERROR})

# ---------------------------------------------------------------------------
# Provider roles (reported as ``providerUsed``)
# ---------------------------------------------------------------------------

PROVIDER_ROLE_PRIMARY = "primary"
PROVIDER_ROLE_FALLBACK = "fallback"
PROVIDER_ROLE_MOCK = "mock"

PROVIDER_GROQ = "groq"
PROVIDER_AZURE = "azure"
PROVIDER_MOCK = "mock"

# Vendor label -> role.  The role names the provider, not the attempt
# position, so a streaming answer from azure is always "fallback".
PROVIDER_ROLES = {
    PROVIDER_GROQ: PROVIDER_ROLE_PRIMARY,
    PROVIDER_AZURE: PROVIDER_ROLE_FALLBACK,
    PROVIDER_MOCK: PROVIDER_ROLE_MOCK,
}
