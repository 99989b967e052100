from datetime import timedelta
from typing import Literal

from pydantic import AliasChoices, BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

ProviderName = Literal["groq", "azure"]

# Vendor credentials are read under their conventional names (no prefix)
# so existing deployments keep working.
_VENDOR_SETTINGS = SettingsConfigDict(
    env_file=".env",
    env_file_encoding="utf-8",
    case_sensitive=False,
    extra="ignore",
)


class ThirdPartyConfig(BaseModel):
    """Configuration for third-party integrations."""

    redis_uri: str = Field(
        default="",
        description="Redis connection URI; empty disables the durable channel",
    )


class GroqConfig(BaseSettings):
    """Fast low-latency provider (OpenAI-compatible Groq endpoint)."""

    model_config = _VENDOR_SETTINGS

    api_key: str = Field(
        default="",
        validation_alias=AliasChoices("GROQ_API_KEY", "api_key"),
        description="Groq API key",
    )
    base_url: str = Field(
        default="https://api.groq.com/openai/v1",
        validation_alias=AliasChoices("GROQ_BASE_URL", "base_url"),
        description="Groq OpenAI-compatible base URL",
    )
    chat_model: str = Field(
        default="llama-3.3-70b-versatile",
        validation_alias=AliasChoices("GROQ_MODEL", "chat_model"),
        description="Model served by Groq",
    )

    def missing_keys(self) -> list[str]:
        return [] if self.api_key.strip() else ["GROQ_API_KEY"]


class AzureOpenAIConfig(BaseSettings):
    """Managed-endpoint provider (Azure OpenAI deployment)."""

    model_config = _VENDOR_SETTINGS

    api_key: str = Field(
        default="",
        validation_alias=AliasChoices("AZURE_OPENAI_API_KEY", "api_key"),
        description="Azure OpenAI API key (sent as the api-key header)",
    )
    endpoint: str = Field(
        default="",
        validation_alias=AliasChoices("AZURE_OPENAI_ENDPOINT", "endpoint"),
        description="Azure OpenAI resource endpoint URL",
    )
    deployment_name: str = Field(
        default="model-router",
        validation_alias=AliasChoices(
            "AZURE_OPENAI_DEPLOYMENT_NAME",
            "AZURE_OPENAI_DEPLOYMENT",
            "deployment_name",
        ),
        description="Deployment identifier",
    )
    api_version: str = Field(
        default="2024-08-01-preview",
        validation_alias=AliasChoices("AZURE_OPENAI_API_VERSION", "api_version"),
        description="Versioned api-version query parameter",
    )

    def missing_keys(self) -> list[str]:
        missing = []
        if not self.api_key.strip():
            missing.append("AZURE_OPENAI_API_KEY")
        if not self.endpoint.strip():
            missing.append("AZURE_OPENAI_ENDPOINT")
        return missing


class ProvidersConfig(BaseModel):
    """Credentials and endpoints of every known provider."""

    groq: GroqConfig = Field(default_factory=GroqConfig)
    azure: AzureOpenAIConfig = Field(default_factory=AzureOpenAIConfig)


class LLMConfig(BaseModel):
    """Provider selection and sampling constants shared by all providers."""

    primary_provider: ProviderName = Field(
        default="groq",
        description="Provider tried first on the non-streaming path",
    )
    streaming_router: ProviderName = Field(
        default="azure",
        description="Provider tried first on the streaming path",
    )
    allow_mock_provider: bool = Field(
        default=False,
        description="Answer with a canned mock reply when no provider is configured",
    )
    temperature: float = Field(default=0.7, description="Sampling temperature")
    max_tokens: int = Field(default=2048, description="Maximum output tokens")
    model_timeout: timedelta = Field(
        default=timedelta(seconds=60),
        description="Per-call timeout for provider requests",
    )
    max_retries: int = Field(
        default=0,
        description="SDK-level retries per provider before failing over",
    )


class ChatConfig(BaseModel):
    """Configuration for chat settings."""

    max_history_messages: int = Field(
        default=20, description="Most recent history messages kept per request"
    )
    request_timeout: timedelta = Field(
        default=timedelta(seconds=120),
        description="Wall-clock limit for one SSE response",
    )
    send_traceback: bool = Field(
        default=False, description="Include tracebacks in SSE error events"
    )


class RelayConfig(BaseModel):
    """Stream relay settings (in-process hub and durable Redis channel)."""

    channel: str = Field(
        default="sse:chat:stream", description="Redis pub/sub channel name"
    )
    outbox_max_size: int = Field(
        default=1000, description="Pending messages kept before dropping"
    )
    max_connect_attempts: int = Field(
        default=10, description="Redis connect attempts before giving up for good"
    )
    connect_backoff: timedelta = Field(
        default=timedelta(milliseconds=50),
        description="Base delay of the exponential connect backoff",
    )
    connect_backoff_max: timedelta = Field(
        default=timedelta(seconds=2), description="Backoff cap"
    )
    connect_timeout: timedelta = Field(
        default=timedelta(seconds=5), description="Single connect attempt timeout"
    )
    replay_traces: int = Field(
        default=20, description="Recent traces per user kept for late subscribers"
    )
    replay_trace_messages: int = Field(
        default=10_000, description="Messages kept per replayed trace"
    )
    replay_ttl: timedelta = Field(
        default=timedelta(hours=1),
        description="Idle time after which a trace leaves the replay buffer",
    )


class ConcurrencyConfig(BaseModel):
    """Per-user single-flight gate (off by default)."""

    single_flight_per_user: bool = Field(
        default=False,
        description="Allow at most one running completion per userId",
    )
    acquire_timeout: timedelta = Field(
        default=timedelta(seconds=5),
        description="How long a second request waits for the user's lock",
    )
    lock_ttl: timedelta = Field(
        default=timedelta(minutes=5),
        description="Redis lock expiry (crash safety)",
    )


class LoggingConfig(BaseModel):
    """Root logger settings."""

    level: str = Field(default="INFO", description="Root log level")
    json_output: bool = Field(default=True, description="Emit JSON lines")


class TracingConfig(BaseModel):
    """OpenTelemetry exporter settings."""

    enabled: bool = Field(default=False)
    service_name: str = Field(default="finagent")
    endpoint: str = Field(default="", description="OTLP HTTP traces endpoint")
    username: str = Field(default="")
    password: str = Field(default="")
    sample_rate: float = Field(default=1.0)
    excluded_urls: list[str] = Field(default_factory=lambda: ["/health", "/metrics"])
