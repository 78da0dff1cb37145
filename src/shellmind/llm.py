"""
Backend Client - Abstraction over the generative-text backend.

Two transports share one interface:
- REST: a JSON generateContent call over HTTPS (httpx)
- gRPC: the GenerativeService unary call (google-ai-generativelanguage)

Which one is used is decided purely by configuration (api_type). Each
call is exactly one network round-trip; there are no retries, the user
simply tries again on the next turn.

An empty or missing candidate is not an error: the client returns the
fallback text so the turn can proceed.
"""

import logging
from collections.abc import Callable, Sequence
from typing import Any, Protocol

import httpx
from google.ai import generativelanguage_v1beta as glm
from google.api_core import exceptions as google_exceptions
from google.api_core.client_options import ClientOptions
from google.auth import exceptions as auth_exceptions

from shellmind.config import ApiType, ShellmindConfig
from shellmind.types import Role, Turn

logger = logging.getLogger(__name__)

FALLBACK_TEXT = "No command generated"
MAX_ERROR_BODY_CHARS = 500


class BackendError(Exception):
    """Error from the backend. Recoverable: the turn is skipped."""
    pass


class RemoteRejected(BackendError):
    """The backend answered with a non-success status."""

    def __init__(self, status: int, body: str) -> None:
        self.status = status
        self.body = body
        super().__init__(f"API request failed with status: {status} - {body}")


class TransportUnavailable(BackendError):
    """The backend could not be reached."""

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(f"Backend unavailable: {reason}")


class MalformedResponse(BackendError):
    """The backend answered, but not with something we can decode."""

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(f"Malformed backend response: {reason}")


class BackendClient(Protocol):
    """Protocol for backend clients."""

    async def generate(
        self,
        config: ShellmindConfig,
        user_prompt: str,
        history: Sequence[Turn],
        system_instruction: str | None = None,
    ) -> str: ...


class RestBackendClient:
    """
    Client for the REST generateContent endpoint.

    The request body is the whole history plus the new user turn; the
    response's first candidate's first text part is the suggestion.
    """

    def __init__(self, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self._transport = transport

    async def generate(
        self,
        config: ShellmindConfig,
        user_prompt: str,
        history: Sequence[Turn],
        system_instruction: str | None = None,
    ) -> str:
        """
        Send one generateContent request.

        Raises:
            RemoteRejected: On a non-success HTTP status
            TransportUnavailable: If the request could not be sent
            MalformedResponse: If the body is not the expected JSON
        """
        body = build_rest_body(config, user_prompt, history, system_instruction)
        url = config.rest_url
        logger.debug(
            f"Sending REST request with {len(body['contents'])} contents to "
            f"{url.split('?', 1)[0]}"
        )

        try:
            async with httpx.AsyncClient(
                transport=self._transport, timeout=config.request_timeout
            ) as client:
                response = await client.post(url, json=body)
        except (httpx.RequestError, httpx.InvalidURL) as e:
            logger.error(f"REST transport error: {e}")
            raise TransportUnavailable(str(e) or type(e).__name__) from e

        if not response.is_success:
            excerpt = response.text[:MAX_ERROR_BODY_CHARS]
            logger.error(f"REST request rejected: {response.status_code} - {excerpt}")
            raise RemoteRejected(response.status_code, excerpt)

        try:
            data = response.json()
        except ValueError as e:
            raise MalformedResponse(f"response is not JSON: {e}") from e

        return extract_rest_text(data)


class GrpcBackendClient:
    """
    Client for the GenerativeService gRPC endpoint.

    A channel is opened per call to the configured endpoint and closed
    once the single unary call returns.
    """

    def __init__(
        self,
        client_factory: Callable[[ShellmindConfig], Any] | None = None,
    ) -> None:
        self._client_factory = client_factory or _create_grpc_client

    async def generate(
        self,
        config: ShellmindConfig,
        user_prompt: str,
        history: Sequence[Turn],
        system_instruction: str | None = None,
    ) -> str:
        """
        Send one GenerateContent call.

        Raises:
            RemoteRejected: If the server rejected the call
            TransportUnavailable: If the channel could not be used
        """
        contents = [_to_grpc_content(turn) for turn in history]
        contents.append(_to_grpc_content(Turn(Role.USER, user_prompt)))
        request = glm.GenerateContentRequest(
            model=f"models/{config.model_name}",
            contents=contents,
            generation_config=glm.GenerationConfig(temperature=config.temperature),
        )
        if system_instruction:
            request.system_instruction = glm.Content(parts=[glm.Part(text=system_instruction)])

        logger.debug(
            f"Sending gRPC request with {len(contents)} contents to {config.grpc_endpoint}"
        )
        try:
            client = self._client_factory(config)
        except (
            ValueError,
            google_exceptions.GoogleAPIError,
            auth_exceptions.GoogleAuthError,
        ) as e:
            raise TransportUnavailable(str(e)) from e

        try:
            response = await client.generate_content(request=request)
        except (
            google_exceptions.ServiceUnavailable,
            google_exceptions.DeadlineExceeded,
            google_exceptions.RetryError,
        ) as e:
            logger.error(f"gRPC transport error: {e}")
            raise TransportUnavailable(str(e)) from e
        except google_exceptions.GoogleAPICallError as e:
            logger.error(f"gRPC request rejected: {e}")
            raise RemoteRejected(int(e.code or 0), e.message or str(e)) from e
        finally:
            await _close_grpc_client(client)

        return extract_grpc_text(response)


def build_rest_body(
    config: ShellmindConfig,
    user_prompt: str,
    history: Sequence[Turn],
    system_instruction: str | None = None,
) -> dict[str, Any]:
    """Serialize history plus the new user turn into a request body."""
    contents = [turn.to_dict() for turn in history]
    contents.append(Turn(Role.USER, user_prompt).to_dict())
    body: dict[str, Any] = {
        "contents": contents,
        "generationConfig": {"temperature": config.temperature},
    }
    if system_instruction:
        body["systemInstruction"] = {"parts": [{"text": system_instruction}]}
    return body


def extract_rest_text(data: Any) -> str:
    """Take the first candidate's first text part, or the fallback text."""
    if not isinstance(data, dict):
        raise MalformedResponse("expected a JSON object")
    candidates = data.get("candidates") or []
    if not isinstance(candidates, list):
        raise MalformedResponse("candidates is not a list")
    if not candidates:
        logger.warning("Backend returned no candidates")
        return FALLBACK_TEXT

    candidate = candidates[0]
    if not isinstance(candidate, dict):
        raise MalformedResponse("candidate is not an object")
    content = candidate.get("content")
    if content is None:
        return FALLBACK_TEXT
    if not isinstance(content, dict):
        raise MalformedResponse("candidate content is not an object")
    parts = content.get("parts")
    if not parts:
        return FALLBACK_TEXT
    if not isinstance(parts, list) or not isinstance(parts[0], dict):
        raise MalformedResponse("content parts is not a list of objects")
    text = parts[0].get("text")
    if text is None:
        return FALLBACK_TEXT
    if not isinstance(text, str):
        raise MalformedResponse("part text is not a string")
    return text


def extract_grpc_text(response: Any) -> str:
    candidates = list(getattr(response, "candidates", []) or [])
    if not candidates:
        logger.warning("Backend returned no candidates")
        return FALLBACK_TEXT
    content = getattr(candidates[0], "content", None)
    parts = list(getattr(content, "parts", []) or [])
    if not parts:
        return FALLBACK_TEXT
    return parts[0].text


def create_backend_client(config: ShellmindConfig) -> BackendClient:
    """Pick the transport named by the configuration."""
    if config.api_type is ApiType.GRPC:
        return GrpcBackendClient()
    return RestBackendClient()


def _to_grpc_content(turn: Turn) -> glm.Content:
    return glm.Content(role=turn.role.value, parts=[glm.Part(text=turn.text)])


def _grpc_host(endpoint: str) -> str:
    """Strip the scheme from the configured endpoint; gRPC wants host[:port]."""
    url = httpx.URL(endpoint)
    if not url.host:
        return endpoint
    return f"{url.host}:{url.port}" if url.port else url.host


def _create_grpc_client(config: ShellmindConfig) -> glm.GenerativeServiceAsyncClient:
    options = ClientOptions(
        api_endpoint=_grpc_host(config.grpc_endpoint),
        api_key=config.api_key or None,
    )
    return glm.GenerativeServiceAsyncClient(
        transport="grpc_asyncio",
        client_options=options,
    )


async def _close_grpc_client(client: Any) -> None:
    transport = getattr(client, "transport", None)
    close = getattr(transport, "close", None)
    if close is not None:
        await close()
