"""Tests for the CLI stream consumer against a mocked server."""

import asyncio
import io
import json

import httpx
import pytest

from cli.client import (
    ChatAPIClient,
    ClientStreamTimeout,
    StreamConnectionError,
    StreamFailed,
    split_words,
)
from cli.config import CLIConfig
from cli.formatter import ResponseFormatter

TRACE = "trace_abc"
USER = "user_cli"


def frame(**payload) -> bytes:
    return f"data: {json.dumps(payload)}\n\n".encode()


def token(content: str, trace_id: str = TRACE) -> bytes:
    return frame(
        type="token", traceId=trace_id, userId=USER, content=content,
        provider="azure", model="model-router",
    )


def complete(response: str, trace_id: str = TRACE) -> bytes:
    return frame(
        type="complete", traceId=trace_id, userId=USER, response=response,
        provider="azure", model="model-router",
        metadata={"providerUsed": "fallback", "tokensUsed": 3},
    )


def ack(response: str) -> dict:
    return {
        "traceId": TRACE,
        "userId": USER,
        "response": response,
        "assistantType": "general",
        "llmProvider": "azure",
        "providerUsed": "fallback",
        "model": "model-router",
        "hasChart": False,
    }


def make_client(frames, snapshot: str = "Hello world", delay: float = 0.0, **config):
    """Client whose server acks with *snapshot* and streams *frames*."""
    seen: dict = {}

    async def body():
        if delay:
            await asyncio.sleep(delay)
        yield frame(type="connected", traceId=TRACE, userId=USER)
        for chunk in frames:
            yield chunk

    def handler(request: httpx.Request) -> httpx.Response:
        if request.method == "POST":
            seen["post"] = json.loads(request.content)
            return httpx.Response(200, json=ack(snapshot))
        seen["params"] = dict(request.url.params)
        return httpx.Response(
            200, headers={"content-type": "text/event-stream"}, content=body()
        )

    cfg = CLIConfig(
        grace_period=config.pop("grace_period", 1.0),
        hard_timeout=config.pop("hard_timeout", 5.0),
        word_delay=0.0,
        **config,
    )
    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    client = ChatAPIClient(cfg, http_client=http)
    client.user_id = USER
    return client, seen


class Recorder:
    def __init__(self) -> None:
        self.chunks: list[tuple[str, dict]] = []

    def __call__(self, text, meta):
        self.chunks.append((text, meta))

    @property
    def texts(self) -> list[str]:
        return [t for t, _ in self.chunks]


class TestStreamMessage:
    @pytest.mark.asyncio
    async def test_live_tokens_rendered_in_order(self):
        client, seen = make_client([token("Hello "), token("world"), complete("Hello world")])
        recorder = Recorder()

        result = await client.stream_message("hi", "general", [], recorder)

        assert recorder.texts == ["Hello ", "world"]
        assert result.content == "Hello world"
        assert result.synthesized is False
        assert result.provider_used == "fallback"
        assert seen["post"]["stream"] is True
        assert seen["params"] == {"userId": USER, "traceId": TRACE}
        await client.close()

    @pytest.mark.asyncio
    async def test_other_traces_are_ignored(self):
        client, _ = make_client(
            [
                token("noise", trace_id="trace_other"),
                token("mine"),
                complete("noise", trace_id="trace_other"),
                complete("mine"),
            ],
            snapshot="mine",
        )
        recorder = Recorder()

        result = await client.stream_message("hi", "general", [], recorder)

        assert recorder.texts == ["mine"]
        assert result.content == "mine"
        await client.close()

    @pytest.mark.asyncio
    async def test_grace_period_falls_back_to_snapshot_words(self):
        client, _ = make_client([token("late")], delay=2.0, grace_period=0.05)
        recorder = Recorder()

        result = await client.stream_message("hi", "general", [], recorder)

        assert recorder.texts == ["Hello ", "world"]
        assert all(meta.get("synthesized") for _, meta in recorder.chunks)
        assert result.synthesized is True
        assert result.content == "Hello world"
        await client.close()

    @pytest.mark.asyncio
    async def test_complete_without_tokens_is_still_incremental(self):
        client, _ = make_client([complete("Hello world")])
        recorder = Recorder()

        result = await client.stream_message("hi", "general", [], recorder)

        assert recorder.texts == ["Hello ", "world"]
        assert result.synthesized is True
        await client.close()

    @pytest.mark.asyncio
    async def test_reset_switch_clears_accumulated_text(self):
        switch = frame(
            type="provider_switch", traceId=TRACE, userId=USER, provider="groq",
            metadata={"from": "azure", "to": "groq", "reason": "x", "reset": True},
        )
        client, _ = make_client(
            [token("bro"), switch, token("good"), complete("good")], snapshot="good"
        )
        recorder = Recorder()

        result = await client.stream_message("hi", "general", [], recorder)

        assert recorder.texts == ["bro", "", "good"]
        assert recorder.chunks[1][1]["reset"] is True
        assert result.content == "good"
        assert result.switches[0]["to"] == "groq"
        await client.close()

    @pytest.mark.asyncio
    async def test_missing_opening_tokens_replay_full_response(self):
        client, _ = make_client([token("world"), complete("Hello world")])
        recorder = Recorder()

        result = await client.stream_message("hi", "general", [], recorder)

        assert recorder.texts == ["world", "", "Hello ", "world"]
        assert recorder.chunks[1][1]["resync"] is True
        assert result.content == "Hello world"
        assert result.synthesized is True
        await client.close()

    @pytest.mark.asyncio
    async def test_error_message_raises(self):
        error = frame(
            type="error", traceId=TRACE, userId=USER, error="sorry",
            metadata={"code": "ALL_PROVIDERS_FAILED"},
        )
        client, _ = make_client([token("a"), error])

        with pytest.raises(StreamFailed) as exc_info:
            await client.stream_message("hi", "general", [], Recorder())

        assert exc_info.value.code == "ALL_PROVIDERS_FAILED"
        await client.close()

    @pytest.mark.asyncio
    async def test_hard_timeout(self):
        client, _ = make_client(
            [], snapshot="", delay=10.0, grace_period=0.01, hard_timeout=0.2
        )

        with pytest.raises(ClientStreamTimeout):
            await client.stream_message("hi", "general", [], Recorder())
        await client.close()

    @pytest.mark.asyncio
    async def test_connection_error(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        client = ChatAPIClient(
            CLIConfig(), http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler))
        )

        with pytest.raises(StreamConnectionError):
            await client.stream_message("hi", "general", [], Recorder())
        await client.close()

    @pytest.mark.asyncio
    async def test_server_error_response(self):
        def handler(request):
            return httpx.Response(
                500,
                json={
                    "error": "An error occurred processing your request",
                    "message": "No LLM provider is configured.",
                    "code": "NO_PROVIDER_CONFIGURED",
                },
            )

        client = ChatAPIClient(
            CLIConfig(), http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler))
        )

        with pytest.raises(StreamFailed) as exc_info:
            await client.send_message("hi")

        assert exc_info.value.code == "NO_PROVIDER_CONFIGURED"
        await client.close()


class TestHelpers:
    def test_split_words_keeps_whitespace(self):
        assert split_words("a  b\nc") == ["a  ", "b\n", "c"]
        assert "".join(split_words("x y z ")) == "x y z "

    def test_formatter_reset(self):
        out = io.StringIO()
        formatter = ResponseFormatter(out)
        formatter.on_chunk("bad", {})
        formatter.on_chunk("", {"reset": True, "to": "groq"})
        formatter.on_chunk("good", {})

        assert formatter.text == "good"
        assert "Switching to groq" in out.getvalue()

    def test_formatter_resync(self):
        out = io.StringIO()
        formatter = ResponseFormatter(out)
        formatter.on_chunk("partial", {})
        formatter.on_chunk("", {"reset": True, "resync": True, "provider": "azure"})
        formatter.on_chunk("full", {})

        assert formatter.text == "full"
        assert "Stream incomplete" in out.getvalue()
        assert "Switching" not in out.getvalue()
