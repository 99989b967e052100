"""Configuration for the finagent CLI and client."""

from pydantic import BaseModel, Field


class CLIConfig(BaseModel):
    """CLI and stream-consumer settings."""

    host: str = Field(default="localhost", description="Server host")
    port: int = Field(default=8080, description="Server port")
    chat_path: str = Field(
        default="/api/chat/stream", description="Path of the chat endpoint"
    )
    events_path: str = Field(
        default="/api/chat/events", description="Path of the SSE subscription"
    )
    grace_period: float = Field(
        default=2.0,
        description="Seconds to wait for the first live token before "
        "simulating the stream from the snapshot",
    )
    hard_timeout: float = Field(
        default=60.0,
        description="Seconds after which a request without a terminal event fails",
    )
    word_delay: float = Field(
        default=0.03, description="Delay between simulated words, in seconds"
    )

    @property
    def base_url(self) -> str:
        return f"http://{self.host}:{self.port}"

    @property
    def chat_url(self) -> str:
        return f"{self.base_url}{self.chat_path}"

    @property
    def events_url(self) -> str:
        return f"{self.base_url}{self.events_path}"
