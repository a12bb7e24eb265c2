"""
Tests for JSON-RPC dispatch, error mapping and parameter extraction.
"""

from __future__ import annotations

import pytest

from a2a_chatbot.dispatcher import (
    JSONRPCDispatcher,
    extract_skill_id,
    extract_user_text,
    parse_request,
)
from a2a_chatbot.task_orchestrator import TaskOrchestrator


@pytest.fixture
def backend(backend_factory):
    return backend_factory(answer="## Done\n- yes")


@pytest.fixture
def dispatcher(backend, catalog):
    return JSONRPCDispatcher(TaskOrchestrator(backend, catalog))


def _send(text="hi", skill_id=None, request_id="req-1"):
    params = {"message": {"role": "user", "parts": [{"kind": "text", "text": text}]}}
    if skill_id is not None:
        params["metadata"] = {"skillId": skill_id}
    request = {"jsonrpc": "2.0", "method": "message/send", "params": params}
    if request_id is not None:
        request["id"] = request_id
    return request


class TestExtraction:

    @pytest.mark.parametrize("params", [
        None,
        "text",
        42,
        [],
        {},
        {"message": None},
        {"message": "hi"},
        {"message": {}},
        {"message": {"parts": None}},
        {"message": {"parts": "hi"}},
        {"message": {"parts": {"text": "hi"}}},
        {"message": {"parts": []}},
        {"message": {"parts": ["hi"]}},
        {"message": {"parts": [None]}},
        {"message": {"parts": [{"kind": "text"}]}},
        {"message": {"parts": [{"text": None}]}},
    ])
    def test_user_text_is_total(self, params):
        assert extract_user_text(params) == ""

    def test_user_text_first_part(self):
        params = {"message": {"parts": [{"text": "first"}, {"text": "second"}]}}
        assert extract_user_text(params) == "first"

    def test_user_text_non_string_is_stringified(self):
        assert extract_user_text({"message": {"parts": [{"text": 12}]}}) == "12"

    @pytest.mark.parametrize("params", [
        None, [], {}, {"metadata": None}, {"metadata": "x"}, {"metadata": {}},
        {"metadata": {"skillId": None}},
    ])
    def test_skill_id_is_total(self, params):
        assert extract_skill_id(params) is None

    def test_skill_id(self):
        assert extract_skill_id({"metadata": {"skillId": "openai.research"}}) == "openai.research"

    @pytest.mark.parametrize("payload", [None, [], "x", 1, {"id": {"nested": True}, "method": "m"}])
    def test_parse_request_rejects_non_envelopes(self, payload):
        assert parse_request(payload) is None


class TestDispatch:

    @pytest.mark.asyncio
    @pytest.mark.parametrize("payload", [
        None,
        {},
        {"jsonrpc": "2.0", "id": 5},
        {"jsonrpc": "2.0", "id": 5, "method": None},
        {"jsonrpc": "2.0", "id": "abc", "method": ""},
        {"jsonrpc": "2.0", "id": "abc", "method": "   "},
        {"jsonrpc": "2.0", "id": 5, "method": 17},
        ["not", "an", "object"],
    ])
    async def test_missing_method_is_invalid_request(self, dispatcher, payload):
        response = await dispatcher.dispatch(payload)
        assert response["error"]["code"] == -32600
        assert response["error"]["message"] == "Invalid Request"
        assert response["id"] is None
        assert "result" not in response

    @pytest.mark.asyncio
    @pytest.mark.parametrize("method", ["tasks/get", "message/sendx", "foo", "agent/getCard"])
    async def test_unknown_method(self, dispatcher, method):
        response = await dispatcher.dispatch({"jsonrpc": "2.0", "id": 3, "method": method})
        assert response["id"] == 3
        assert response["error"]["code"] == -32601
        assert method in response["error"]["message"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("params", [None, {}, {"message": {"parts": [{"text": "hi"}]}}, "junk"])
    async def test_stream_method_rejected_on_rpc_call(self, dispatcher, backend, params):
        response = await dispatcher.dispatch(
            {"jsonrpc": "2.0", "id": "s1", "method": "message/stream", "params": params}
        )
        assert response["id"] == "s1"
        assert response["error"]["code"] == -32601
        assert "/message/stream" in response["error"]["message"]
        assert backend.streamed == []

    @pytest.mark.asyncio
    async def test_extended_card_not_configured(self, dispatcher):
        response = await dispatcher.dispatch(
            {"jsonrpc": "2.0", "id": 9, "method": "agent/getAuthenticatedExtendedCard"}
        )
        assert response == {
            "jsonrpc": "2.0",
            "id": 9,
            "error": {"code": -32007, "message": "AuthenticatedExtendedCardNotConfiguredError"},
        }

    @pytest.mark.asyncio
    async def test_message_send(self, dispatcher, backend):
        response = await dispatcher.dispatch(_send("What is SSE?", skill_id="openai.research"))

        assert response["jsonrpc"] == "2.0"
        assert response["id"] == "req-1"
        assert "error" not in response
        task = response["result"]
        assert task["kind"] == "task"
        assert task["status"]["state"] == "completed"
        assert task["metadata"] == {"skillId": "openai.research"}
        assert task["artifacts"][0]["parts"] == [{"kind": "text", "text": "## Done\n- yes"}]
        assert [m["role"] for m in task["history"]] == ["user", "agent"]
        assert backend.asked == [("What is SSE?", "openai.research")]

    @pytest.mark.asyncio
    async def test_message_send_synthesizes_missing_id(self, dispatcher):
        first = await dispatcher.dispatch(_send(request_id=None))
        second = await dispatcher.dispatch(_send(request_id=None))
        assert isinstance(first["id"], str) and first["id"]
        assert first["id"] != second["id"]
        assert first["result"]["status"]["state"] == "completed"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("request_id", [1.5, 2.0, -3, 0, "abc"])
    async def test_message_send_echoes_numeric_and_string_ids(self, dispatcher, request_id):
        response = await dispatcher.dispatch(_send(request_id=request_id))

        assert response["result"]["status"]["state"] == "completed"
        assert response["id"] == request_id
        assert type(response["id"]) is type(request_id)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("request_id", [[1], {"a": 1}])
    async def test_non_scalar_id_is_invalid_request(self, dispatcher, request_id):
        response = await dispatcher.dispatch(_send(request_id=request_id))
        assert response["error"]["code"] == -32600
        assert response["id"] is None

    @pytest.mark.asyncio
    async def test_message_send_with_malformed_params(self, dispatcher, backend):
        response = await dispatcher.dispatch(
            {"jsonrpc": "2.0", "id": 1, "method": "message/send", "params": {"message": 3}}
        )
        assert response["result"]["history"][0]["parts"][0]["text"] == ""
        assert backend.asked == [("", "openai.brief")]

    @pytest.mark.asyncio
    async def test_message_send_backend_failure(self, catalog, backend_factory):
        backend = backend_factory(ask_error=RuntimeError("quota exceeded"))
        dispatcher = JSONRPCDispatcher(TaskOrchestrator(backend, catalog))

        response = await dispatcher.dispatch(_send())

        assert response["id"] == "req-1"
        assert response["error"]["code"] == -32603
        assert "quota exceeded" in response["error"]["message"]
        assert "result" not in response

    @pytest.mark.asyncio
    async def test_handler_crash_is_internal_error(self, dispatcher):
        async def broken(request, request_id):
            raise KeyError("boom")

        dispatcher.register_method("custom/broken", broken)
        response = await dispatcher.dispatch({"jsonrpc": "2.0", "id": 4, "method": "custom/broken"})
        assert response["error"]["code"] == -32603
        assert response["id"] == 4


async def _stream(dispatcher, payload):
    return [envelope async for envelope in dispatcher.dispatch_stream(payload)]


class TestDispatchStream:

    @pytest.mark.asyncio
    async def test_stream_hi(self, dispatcher):
        payload = {
            "jsonrpc": "2.0",
            "id": "st-1",
            "method": "message/stream",
            "params": {"message": {"parts": [{"text": "hi"}]}},
        }
        envelopes = await _stream(dispatcher, payload)

        assert len(envelopes) >= 4
        results = [e["result"] for e in envelopes]
        assert all(e["id"] == "st-1" for e in envelopes)
        assert results[0]["kind"] == "task"
        assert results[0]["status"]["state"] == "submitted"
        assert [r["status"]["state"] for r in results[1:3]] == ["working", "working"]
        assert all(r["final"] is False for r in results[1:3])

        artifacts = results[3:-1]
        assert all(r["kind"] == "artifact-update" for r in artifacts)
        assert len({r["artifact"]["artifactId"] for r in artifacts}) <= 1
        if artifacts:
            assert artifacts[0].get("append") is None
            assert all(r["append"] is True for r in artifacts[1:])

        assert results[-1]["kind"] == "status-update"
        assert results[-1]["status"]["state"] == "completed"
        assert results[-1]["final"] is True

    @pytest.mark.asyncio
    async def test_stream_echoes_fractional_id(self, dispatcher):
        payload = {"jsonrpc": "2.0", "id": 1.5, "method": "message/stream"}
        envelopes = await _stream(dispatcher, payload)

        assert envelopes[-1]["result"]["status"]["state"] == "completed"
        assert {e["id"] for e in envelopes} == {1.5}

    @pytest.mark.asyncio
    async def test_stream_synthesizes_missing_id(self, dispatcher):
        envelopes = await _stream(dispatcher, {"jsonrpc": "2.0", "method": "message/stream"})
        ids = {e["id"] for e in envelopes}
        assert len(ids) == 1
        assert isinstance(ids.pop(), str)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("payload,expected_id", [
        (None, None),
        ("garbage", None),
        ({"jsonrpc": "2.0", "id": 11, "method": "message/send"}, 11),
        ({"jsonrpc": "2.0", "id": "q", "method": None}, "q"),
        ({"jsonrpc": "2.0", "id": "q"}, "q"),
    ])
    async def test_stream_rejects_other_methods(self, dispatcher, backend, payload, expected_id):
        envelopes = await _stream(dispatcher, payload)
        assert len(envelopes) == 1
        assert envelopes[0]["id"] == expected_id
        assert envelopes[0]["error"]["code"] == -32600
        assert backend.streamed == []

    @pytest.mark.asyncio
    async def test_stream_backend_failure(self, catalog, backend_factory):
        backend = backend_factory(fragments=["a", "b", "c", "d"], fail_after=3)
        dispatcher = JSONRPCDispatcher(TaskOrchestrator(backend, catalog))

        envelopes = await _stream(dispatcher, {"jsonrpc": "2.0", "id": 1, "method": "message/stream"})

        assert [e["result"]["kind"] for e in envelopes[:-1]] == [
            "task", "status-update", "status-update", "artifact-update",
        ]
        assert envelopes[-1]["error"]["code"] == -32000
