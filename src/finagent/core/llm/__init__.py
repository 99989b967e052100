"""Provider adapters and the availability resolver."""

from .base import (  # noqa: F401
    ProviderAdapter,
    ProviderCallFailed,
    ProviderChunk,
    ProviderReply,
    ProviderUnavailable,
)
from .chat_model import ChatModelAdapter  # noqa: F401
from .deps import build_providers, get_provider_registry  # noqa: F401
from .mock import MockAdapter  # noqa: F401
from .registry import (  # noqa: F401
    KNOWN_PROVIDERS,
    ProviderRegistry,
    ProviderStatus,
    remediation_hint,
    resolve_providers,
)
from .vendors import DEFAULT_FACTORIES, build_azure_adapter, build_groq_adapter  # noqa: F401
