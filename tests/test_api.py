"""HTTP tests for the chat and health endpoints."""

import asyncio
import json
from datetime import timedelta

import httpx
import pytest

from cli.client import ChatAPIClient
from cli.config import CLIConfig
from fakes import ScriptedAdapter, make_registry
from finagent.api.streaming import event_stream_response
from finagent.infra.concurrency import LocalUserLockBackend, UserLock

CHAT_URL = "/api/chat/stream"
EVENTS_URL = "/api/chat/events"
SSE_ACCEPT = {"Accept": "text/event-stream"}


def parse_sse(text: str) -> list[dict]:
    events = []
    for block in text.split("\n\n"):
        for line in block.split("\n"):
            if line.startswith("data: "):
                events.append(json.loads(line[6:]))
    return events


class TestChatJSON:
    def test_non_streaming_answer(self, make_client):
        groq = ScriptedAdapter("groq", "Markets are up.", tokens_used=12)
        client = make_client(make_registry(groq, ScriptedAdapter("azure", "no")))

        response = client.post(
            CHAT_URL,
            json={"message": "How are markets?", "assistantType": "analyst", "userId": "u1"},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["response"] == "Markets are up."
        assert body["llmProvider"] == "groq"
        assert body["providerUsed"] == "primary"
        assert body["model"] == "groq-model"
        assert body["tokensUsed"] == 12
        assert body["assistantType"] == "analyst"
        assert body["userId"] == "u1"
        assert body["traceId"].startswith("trace_")
        assert body["hasChart"] is False
        assert "chartHtml" not in body

    def test_persona_and_history_reach_provider(self, make_client, app_config):
        groq = ScriptedAdapter("groq", "ok")
        client = make_client(make_registry(groq))

        client.post(
            CHAT_URL,
            json={
                "message": "and now?",
                "assistantType": "economist",
                "history": [
                    {"role": "user", "content": "hello"},
                    {"role": "assistant", "content": "hi"},
                ],
            },
        )

        sent = groq.seen[0]
        assert sent[0].content == app_config.persona.system_prompt("economist")
        assert [m.content for m in sent[1:]] == ["hello", "hi", "and now?"]

    def test_persona_without_configured_prompt_uses_general(self, make_client, app_config):
        app_config.persona.prompts.pop("trader")
        groq = ScriptedAdapter("groq", "ok")
        client = make_client(make_registry(groq), app_config)

        response = client.post(CHAT_URL, json={"message": "hi", "assistantType": "trader"})

        assert response.status_code == 200
        assert groq.seen[0][0].content == app_config.persona.prompts["general"]

    def test_user_id_generated_when_absent(self, make_client):
        client = make_client(make_registry(ScriptedAdapter("groq", "ok")))

        body = client.post(CHAT_URL, json={"message": "hi"}).json()

        assert body["userId"].startswith("user_")

    def test_no_provider_is_500_with_hint(self, make_client):
        client = make_client(make_registry())

        response = client.post(CHAT_URL, json={"message": "hi"})

        assert response.status_code == 500
        body = response.json()
        assert body["error"] == "An error occurred processing your request"
        assert body["code"] == "NO_PROVIDER_CONFIGURED"
        assert "GROQ_API_KEY" in body["message"]

    def test_all_failed_is_500_with_apology(self, make_client):
        client = make_client(
            make_registry(
                ScriptedAdapter("groq", fail="InternalServerError (HTTP 500)"),
                ScriptedAdapter("azure", fail="APIConnectionError"),
            )
        )

        response = client.post(CHAT_URL, json={"message": "hi"})

        assert response.status_code == 500
        body = response.json()
        assert body["code"] == "ALL_PROVIDERS_FAILED"
        assert "HTTP 500" not in body["message"]

    def test_validation(self, make_client):
        client = make_client(make_registry(ScriptedAdapter("groq", "ok")))

        assert client.post(CHAT_URL, json={"message": ""}).status_code == 422
        assert (
            client.post(
                CHAT_URL, json={"message": "hi", "assistantType": "pirate"}
            ).status_code
            == 422
        )


class TestChatSSE:
    def test_event_sequence(self, make_client):
        azure = ScriptedAdapter("azure", tokens=["Hel", "lo"])
        client = make_client(make_registry(ScriptedAdapter("groq", "no"), azure))

        response = client.post(
            CHAT_URL, json={"message": "hi", "stream": True, "userId": "u1"}, headers=SSE_ACCEPT
        )

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")
        events = parse_sse(response.text)
        assert [e["type"] for e in events] == ["connected", "content", "content", "done"]
        assert events[0]["userId"] == "u1"
        done = events[-1]
        assert done["response"] == "Hello"
        assert done["provider"] == "azure"
        assert done["providerUsed"] == "fallback"
        assert done["traceId"] == events[0]["traceId"]

    def test_switch_event_in_stream(self, make_client):
        azure = ScriptedAdapter("azure", tokens=["x", "y"], fail_after=1, fail="APITimeoutError")
        groq = ScriptedAdapter("groq", tokens=["ok"])
        client = make_client(make_registry(groq, azure))

        response = client.post(
            CHAT_URL, json={"message": "hi", "stream": True}, headers=SSE_ACCEPT
        )

        events = parse_sse(response.text)
        assert [e["type"] for e in events] == [
            "connected",
            "content",
            "provider_switch",
            "content",
            "done",
        ]
        switch = events[2]
        assert switch["from"] == "azure"
        assert switch["to"] == "groq"
        assert switch["reset"] is True
        assert events[-1]["response"] == "ok"

    def test_no_provider_becomes_error_event(self, make_client):
        client = make_client(make_registry())

        response = client.post(
            CHAT_URL, json={"message": "hi", "stream": True}, headers=SSE_ACCEPT
        )

        events = parse_sse(response.text)
        assert events[-1]["type"] == "error"
        assert events[-1]["code"] == "NO_PROVIDER_CONFIGURED"


class TestRelayedStream:
    def test_ack_then_subscription_replays_trace(self, make_client):
        azure = ScriptedAdapter("azure", tokens=["one ", "two"], tokens_used=2)
        client = make_client(make_registry(azure))

        ack = client.post(CHAT_URL, json={"message": "hi", "stream": True, "userId": "u7"})

        assert ack.status_code == 200
        body = ack.json()
        assert body["response"] == "one two"
        trace_id = body["traceId"]

        response = client.get(EVENTS_URL, params={"userId": "u7", "traceId": trace_id})

        events = parse_sse(response.text)
        assert events[0]["type"] == "connected"
        messages = [e for e in events[1:] if e["traceId"] == trace_id]
        assert [m["type"] for m in messages] == ["token", "token", "complete"]
        assert [m["content"] for m in messages[:2]] == ["one ", "two"]
        assert messages[-1]["response"] == "one two"
        assert messages[-1]["metadata"] == {"providerUsed": "fallback", "tokensUsed": 2}

    def test_failed_trace_ends_with_error_message(self, make_client):
        client = make_client(make_registry(ScriptedAdapter("azure", fail="x")))

        ack = client.post(CHAT_URL, json={"message": "hi", "stream": True, "userId": "u8"})
        assert ack.status_code == 500

        messages = client.app.state.stream_hub.replay("u8")
        assert [m.type for m in messages] == ["error"]
        assert messages[0].metadata == {"code": "ALL_PROVIDERS_FAILED"}

    def test_long_answer_reaches_client_whole(self, make_client):
        words = [f"w{index} " for index in range(150)]
        azure = ScriptedAdapter("azure", tokens=words)
        client = make_client(make_registry(azure))

        ack = client.post(
            CHAT_URL,
            json={
                "message": "tell me everything",
                "stream": True,
                "userId": "u9",
                "history": [
                    {"role": "user", "content": "earlier question"},
                    {"role": "assistant", "content": "earlier answer"},
                ],
            },
        )
        assert ack.status_code == 200
        trace_id = ack.json()["traceId"]
        frames = client.get(
            EVENTS_URL, params={"userId": "u9", "traceId": trace_id}
        ).content

        def handler(request: httpx.Request) -> httpx.Response:
            if request.method == "POST":
                return httpx.Response(200, json=ack.json())
            return httpx.Response(
                200, headers={"content-type": "text/event-stream"}, content=frames
            )

        chunks: list[str] = []

        async def consume():
            api = ChatAPIClient(
                CLIConfig(word_delay=0.0),
                http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
            )
            api.user_id = "u9"
            try:
                return await api.stream_message(
                    "tell me everything",
                    "general",
                    [],
                    lambda text, meta: chunks.append(text),
                )
            finally:
                await api.close()

        result = asyncio.run(consume())

        assert result.content == "".join(words)
        assert result.synthesized is False
        assert chunks == words
        sent = azure.seen[0]
        assert [m.content for m in sent[1:]] == [
            "earlier question",
            "earlier answer",
            "tell me everything",
        ]

    def test_events_replays_only_the_requested_trace(self, make_client):
        azure = ScriptedAdapter("azure", tokens=["a"])
        client = make_client(make_registry(azure))

        first = client.post(CHAT_URL, json={"message": "1", "stream": True, "userId": "u10"})
        second = client.post(CHAT_URL, json={"message": "2", "stream": True, "userId": "u10"})
        trace_id = second.json()["traceId"]

        response = client.get(EVENTS_URL, params={"userId": "u10", "traceId": trace_id})

        traces = {e["traceId"] for e in parse_sse(response.text)[1:]}
        assert traces == {trace_id}
        assert first.json()["traceId"] != trace_id

    def test_events_requires_user_id(self, make_client):
        client = make_client(make_registry(ScriptedAdapter("groq", "ok")))

        assert client.get(EVENTS_URL).status_code == 422


class TestHealth:
    def test_healthy_with_provider(self, make_client):
        client = make_client(make_registry(ScriptedAdapter("groq", "ok")))

        body = client.get("/health").json()

        assert body["status"] == "healthy"
        assert body["service"] == "finagent"
        assert body["providers"]["ready"] is True

    def test_degraded_without_provider(self, make_client):
        client = make_client(make_registry())

        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "degraded"

    def test_metrics_exposed(self, make_client):
        client = make_client(make_registry(ScriptedAdapter("groq", "ok")))
        client.post(CHAT_URL, json={"message": "hi"})

        text = client.get("/metrics").text

        assert "finagent_provider_calls_total" in text


class TestLeaseRelease:
    @pytest.mark.asyncio
    async def test_lease_released_when_body_never_starts(self):
        lock = UserLock(LocalUserLockBackend(), acquire_timeout=timedelta(seconds=0.05))
        lease = await lock.acquire("u1")
        started = False

        async def frames():
            nonlocal started
            started = True
            yield "data: {}\n\n"

        response = event_stream_response(frames(), on_close=lease.release)
        await response.background()

        assert started is False
        second = await lock.acquire("u1")
        await second.release()

    def test_sse_request_frees_user_lock(self, make_client, app_config):
        app_config.concurrency.single_flight_per_user = True
        app_config.concurrency.acquire_timeout = timedelta(seconds=0.1)
        client = make_client(
            make_registry(ScriptedAdapter("azure", tokens=["x"])), app_config
        )

        for _ in range(2):
            response = client.post(
                CHAT_URL,
                json={"message": "hi", "stream": True, "userId": "u11"},
                headers=SSE_ACCEPT,
            )
            assert response.status_code == 200
            assert parse_sse(response.text)[-1]["type"] == "done"
