"""
Tests for the backend clients.

REST calls are served by httpx.MockTransport; the gRPC client gets a
fake service client through its factory.
"""

import json

import httpx
import pytest
from google.ai import generativelanguage_v1beta as glm
from google.api_core import exceptions as google_exceptions

from shellmind.config import ApiType
from shellmind.llm import (
    FALLBACK_TEXT,
    GrpcBackendClient,
    MalformedResponse,
    RemoteRejected,
    RestBackendClient,
    TransportUnavailable,
    build_rest_body,
    create_backend_client,
    extract_rest_text,
)
from shellmind.types import Role, Turn


def _candidate_response(text: str) -> dict:
    return {"candidates": [{"content": {"role": "model", "parts": [{"text": text}]}}]}


class TestRestBody:
    """Test request body construction."""

    def test_history_then_new_user_turn(self, config) -> None:
        history = [Turn(Role.USER, "hi"), Turn(Role.MODEL, "hello")]
        body = build_rest_body(config, "list files", history)

        assert [c["role"] for c in body["contents"]] == ["user", "model", "user"]
        assert body["contents"][-1]["parts"] == [{"text": "list files"}]
        assert body["generationConfig"] == {"temperature": config.temperature}
        assert "systemInstruction" not in body

    def test_system_instruction_included(self, config) -> None:
        body = build_rest_body(config, "x", [], "be brief")
        assert body["systemInstruction"] == {"parts": [{"text": "be brief"}]}


class TestRestResponseDecoding:
    def test_first_candidate_first_part(self) -> None:
        data = {
            "candidates": [
                {"content": {"parts": [{"text": "ls"}, {"text": "ignored"}]}},
                {"content": {"parts": [{"text": "other"}]}},
            ]
        }
        assert extract_rest_text(data) == "ls"

    def test_zero_candidates_fall_back(self) -> None:
        assert extract_rest_text({"candidates": []}) == FALLBACK_TEXT
        assert extract_rest_text({}) == FALLBACK_TEXT

    def test_candidate_without_parts_falls_back(self) -> None:
        assert extract_rest_text({"candidates": [{"content": {}}]}) == FALLBACK_TEXT

    def test_non_object_is_malformed(self) -> None:
        with pytest.raises(MalformedResponse):
            extract_rest_text(["not", "an", "object"])

    @pytest.mark.parametrize(
        "data",
        [
            {"candidates": {"a": 1}},
            {"candidates": ["text"]},
            {"candidates": [{"content": "ls"}]},
            {"candidates": [{"content": {"parts": {"a": 1}}}]},
            {"candidates": [{"content": {"parts": ["ls"]}}]},
            {"candidates": [{"content": {"parts": [{"text": 7}]}}]},
        ],
    )
    def test_wrong_shapes_are_malformed(self, data) -> None:
        """Unexpected shapes surface as a backend error, never a KeyError."""
        with pytest.raises(MalformedResponse):
            extract_rest_text(data)


class TestRestBackendClient:
    """Test the REST transport end to end against a mock transport."""

    @pytest.mark.asyncio
    async def test_generate_returns_text(self, config) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=_candidate_response("ls -la"))

        client = RestBackendClient(transport=httpx.MockTransport(handler))
        text = await client.generate(config, "list files", [Turn(Role.USER, "hi")])

        assert text == "ls -la"
        assert len(seen) == 1
        request = seen[0]
        assert request.method == "POST"
        assert request.url.path == "/v1beta/models/gemini-1.5-flash:generateContent"
        assert request.url.params["key"] == "test-key"
        body = json.loads(request.content)
        assert body["contents"][-1]["parts"][0]["text"] == "list files"

    @pytest.mark.asyncio
    async def test_zero_candidates_is_not_an_error(self, config) -> None:
        transport = httpx.MockTransport(lambda r: httpx.Response(200, json={"candidates": []}))
        client = RestBackendClient(transport=transport)
        assert await client.generate(config, "x", []) == FALLBACK_TEXT

    @pytest.mark.asyncio
    async def test_non_success_status_is_remote_rejected(self, config) -> None:
        transport = httpx.MockTransport(
            lambda r: httpx.Response(403, text="API key not valid")
        )
        client = RestBackendClient(transport=transport)

        with pytest.raises(RemoteRejected) as exc_info:
            await client.generate(config, "x", [])
        assert exc_info.value.status == 403
        assert "API key not valid" in exc_info.value.body

    @pytest.mark.asyncio
    async def test_connection_failure_is_transport_unavailable(self, config) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        client = RestBackendClient(transport=httpx.MockTransport(handler))
        with pytest.raises(TransportUnavailable):
            await client.generate(config, "x", [])

    @pytest.mark.asyncio
    async def test_non_json_body_is_malformed(self, config) -> None:
        transport = httpx.MockTransport(lambda r: httpx.Response(200, text="<html>"))
        client = RestBackendClient(transport=transport)
        with pytest.raises(MalformedResponse):
            await client.generate(config, "x", [])

    @pytest.mark.asyncio
    async def test_parts_object_is_malformed(self, config) -> None:
        body = {"candidates": [{"content": {"parts": {"a": 1}}}]}
        transport = httpx.MockTransport(lambda r: httpx.Response(200, json=body))
        client = RestBackendClient(transport=transport)
        with pytest.raises(MalformedResponse):
            await client.generate(config, "x", [])

    @pytest.mark.asyncio
    async def test_invalid_url_is_transport_unavailable(self, config) -> None:
        config.model_name = "gemini\x01flash"
        transport = httpx.MockTransport(lambda r: httpx.Response(200, json={}))
        client = RestBackendClient(transport=transport)
        with pytest.raises(TransportUnavailable):
            await client.generate(config, "x", [])

    @pytest.mark.asyncio
    async def test_exactly_one_round_trip_on_failure(self, config) -> None:
        """No retries: a failing call hits the network once."""
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(503, text="unavailable")

        client = RestBackendClient(transport=httpx.MockTransport(handler))
        with pytest.raises(RemoteRejected):
            await client.generate(config, "x", [])
        assert len(calls) == 1


class FakeGenerativeService:
    """Stands in for GenerativeServiceAsyncClient."""

    def __init__(self, response=None, error: Exception | None = None) -> None:
        self.response = response
        self.error = error
        self.requests: list[glm.GenerateContentRequest] = []

    async def generate_content(self, request: glm.GenerateContentRequest):
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        return self.response


class TestGrpcBackendClient:
    """Test the gRPC transport with a fake service client."""

    @pytest.mark.asyncio
    async def test_generate_returns_text(self, config) -> None:
        response = glm.GenerateContentResponse(
            candidates=[glm.Candidate(content=glm.Content(parts=[glm.Part(text="pwd")]))]
        )
        service = FakeGenerativeService(response=response)
        client = GrpcBackendClient(client_factory=lambda cfg: service)

        text = await client.generate(
            config, "where am I", [Turn(Role.USER, "hi"), Turn(Role.MODEL, "hello")], "sys"
        )

        assert text == "pwd"
        request = service.requests[0]
        assert request.model == "models/gemini-1.5-flash"
        assert [c.role for c in request.contents] == ["user", "model", "user"]
        assert request.contents[-1].parts[0].text == "where am I"
        assert request.system_instruction.parts[0].text == "sys"

    @pytest.mark.asyncio
    async def test_empty_candidates_fall_back(self, config) -> None:
        service = FakeGenerativeService(response=glm.GenerateContentResponse())
        client = GrpcBackendClient(client_factory=lambda cfg: service)
        assert await client.generate(config, "x", []) == FALLBACK_TEXT

    @pytest.mark.asyncio
    async def test_unavailable_is_transport_unavailable(self, config) -> None:
        service = FakeGenerativeService(error=google_exceptions.ServiceUnavailable("down"))
        client = GrpcBackendClient(client_factory=lambda cfg: service)
        with pytest.raises(TransportUnavailable):
            await client.generate(config, "x", [])

    @pytest.mark.asyncio
    async def test_rejected_call_is_remote_rejected(self, config) -> None:
        service = FakeGenerativeService(error=google_exceptions.InvalidArgument("bad model"))
        client = GrpcBackendClient(client_factory=lambda cfg: service)
        with pytest.raises(RemoteRejected) as exc_info:
            await client.generate(config, "x", [])
        assert exc_info.value.status == 400


class TestBackendSelection:
    def test_selection_follows_api_type(self, config) -> None:
        assert isinstance(create_backend_client(config), RestBackendClient)
        config.api_type = ApiType.GRPC
        assert isinstance(create_backend_client(config), GrpcBackendClient)
