"""Response formatter for incremental chat output."""

import logging
from typing import Any, TextIO

logger = logging.getLogger(__name__)


class ResponseFormatter:
    """Renders streamed chunks and provider switches."""

    def __init__(self, output: TextIO, show_switches: bool = True):
        """Initialize the formatter.

        Parameters
        ----------
        output
            File-like object to write output to.
        show_switches
            Whether to announce a provider switch that restarts the answer.
        """
        self.output = output
        self.show_switches = show_switches
        self.content_buffer: list[str] = []
        self.content_started = False

    def on_chunk(self, text: str, meta: dict[str, Any]) -> None:
        """Chunk callback for ``ChatAPIClient.stream_message``."""
        if meta.get("reset"):
            self.content_buffer.clear()
            if meta.get("resync"):
                self._print("\n\n↻ Stream incomplete, replaying the full response\n\n")
            elif self.show_switches:
                target = meta.get("to") or meta.get("provider") or "fallback"
                self._print(f"\n\n↻ Switching to {target}, restarting response\n\n")
            return

        if not text:
            return
        if not self.content_started:
            self._print("\nResponse:\n")
            self.content_started = True
        self.content_buffer.append(text)
        self.output.write(text)
        self.output.flush()

    def show_reply(self, body: dict[str, Any]) -> None:
        """Display a non-streaming JSON reply."""
        self._print("\nResponse:\n")
        self._print(body.get("response", ""))
        self.content_started = True
        self.content_buffer.append(body.get("response", ""))

    def show_footer(
        self, provider: str | None, model: str | None, provider_used: str | None
    ) -> None:
        if provider or model:
            self._print(f"\n[{provider or '?'} / {model or '?'} ({provider_used or '?'})]")

    def finish_response(self) -> None:
        """Finish displaying a response."""
        if self.content_buffer:
            self._print("\n")
            self.content_buffer.clear()
        self.content_started = False

    @property
    def text(self) -> str:
        return "".join(self.content_buffer)

    def _print(self, text: str) -> None:
        """Print text to output."""
        self.output.write(text)
        self.output.flush()
