"""Main CLI loop for interactive chat."""

import logging
import sys
from typing import TextIO

from .client import (
    ChatAPIClient,
    ClientStreamTimeout,
    StreamConnectionError,
    StreamFailed,
)
from .config import CLIConfig
from .formatter import ResponseFormatter

logger = logging.getLogger(__name__)

GENERIC_FAILURE = "Something went wrong. Please try again."


class FinagentCLI:
    """Interactive CLI for the finagent chat API."""

    def __init__(
        self,
        config: CLIConfig,
        persona: str = "general",
        user_id: str | None = None,
        stream: bool = True,
        input_stream: TextIO = sys.stdin,
        output_stream: TextIO = sys.stdout,
        client: ChatAPIClient | None = None,
    ):
        """Initialize the CLI.

        Parameters
        ----------
        config
            CLI configuration.
        persona
            Assistant persona sent with every message.
        user_id
            Stable user identifier; generated by the client when omitted.
        stream
            Render answers incrementally over the event subscription.
        input_stream
            Input stream for user input (default: stdin).
        output_stream
            Output stream for responses (default: stdout).
        """
        self.config = config
        self.persona = persona
        self.stream = stream
        self.input_stream = input_stream
        self.output_stream = output_stream
        self.client = client or ChatAPIClient(config)
        if user_id:
            self.client.user_id = user_id
        self.history: list[dict[str, str]] = []

    async def run(self) -> None:
        """Run the interactive CLI loop."""
        try:
            self._print_welcome()
            while True:
                try:
                    query = self._get_user_input()
                    if not query.strip():
                        continue

                    if query.strip().lower() in ("exit", "quit", "q"):
                        self._print("Goodbye!\n")
                        break

                    await self._process_query(query)

                except KeyboardInterrupt:
                    self._print("\n\nInterrupted. Use 'exit' or 'quit' to exit.\n")
                except EOFError:
                    self._print("\nGoodbye!\n")
                    break
        finally:
            await self.client.close()

    async def _process_query(self, query: str) -> None:
        """Send one message and render the answer."""
        formatter = ResponseFormatter(self.output_stream)

        try:
            if self.stream:
                result = await self.client.stream_message(
                    query, self.persona, self.history, formatter.on_chunk
                )
                answer = result.content
                formatter.show_footer(result.provider, result.model, result.provider_used)
            else:
                body = await self.client.send_message(query, self.persona, self.history)
                answer = body.get("response", "")
                formatter.show_reply(body)
                formatter.show_footer(
                    body.get("llmProvider"), body.get("model"), body.get("providerUsed")
                )
        except (ClientStreamTimeout, StreamConnectionError, StreamFailed) as e:
            logger.debug("Request failed: %r", e)
            formatter.finish_response()
            self._print(f"\n{GENERIC_FAILURE}\n\n")
            return

        formatter.finish_response()
        self._print("\n")
        self.history.append({"role": "user", "content": query})
        self.history.append({"role": "assistant", "content": answer})

    def _get_user_input(self) -> str:
        """Get user input from the input stream."""
        self._print("> ")
        line = self.input_stream.readline()
        if not line:
            raise EOFError
        return line.rstrip("\n\r")

    def _print_welcome(self) -> None:
        """Print welcome message."""
        self._print("finagent CLI - Interactive Chat Interface\n")
        self._print(f"Connected to: {self.config.chat_url} (persona: {self.persona})\n")
        self._print(
            "Type your message and press Enter. Type 'exit' or 'quit' to exit.\n\n"
        )

    def _print(self, text: str) -> None:
        """Print text to output stream."""
        self.output_stream.write(text)
        self.output_stream.flush()


async def main(
    host: str = "localhost",
    port: int = 8080,
    persona: str = "general",
    user_id: str | None = None,
    debug: bool = False,
    stream: bool = True,
) -> None:
    """Main entry point for the CLI."""
    log_level = logging.DEBUG if debug else logging.WARNING
    logging.basicConfig(
        level=log_level,
        format="%(levelname)s: %(message)s",
        stream=sys.stderr,
    )

    config = CLIConfig(host=host, port=port)

    cli = FinagentCLI(config, persona=persona, user_id=user_id, stream=stream)
    await cli.run()
