"""
HTTP facade over named AsyncClients.

Every public operation builds one immutable RequestDescriptor, resolves the named
client, dispatches exactly one request and interprets the response. Callers
describe what to send; bearer authorization, body encoding and typed decoding
are handled here. Nothing is retried and nothing is swallowed.
"""

import inspect
import logging
from collections.abc import Awaitable, Callable, Iterable, Mapping
from dataclasses import replace
from typing import Any

import httpx

from httpfacade.cancellation import CancellationToken
from httpfacade.codec import JsonCodec, PydanticJsonCodec, type_name
from httpfacade.http_client import ClientFactory, NamedClientFactory
from httpfacade.models import (
    DEFAULT_UPLOAD_CONTENT_TYPE,
    JSON_CONTENT_TYPE,
    BodyKind,
    Failure,
    FilePart,
    MultipartForm,
    Outcome,
    RequestDescriptor,
    Success,
    UploadSource,
)
from httpfacade.query import append_query_string
from httpfacade.settings import Settings

logger = logging.getLogger(__name__)

FORM_URLENCODED_CONTENT_TYPE = "application/x-www-form-urlencoded"


class HttpFacadeError(RuntimeError):
    """Base class for failures raised by the facade itself."""


class ResponseDecodeError(HttpFacadeError):
    """A response body could not be decoded into the requested type."""

    def __init__(self, target_type: Any, content: str, status_code: int) -> None:
        self.target_type = target_type
        self.content = content
        self.status_code = status_code
        super().__init__(
            f"Failed to deserialize JSON response (status {status_code}) "
            f"to type {type_name(target_type)}. Content: {content}"
        )


class RequestCancelledError(HttpFacadeError):
    """The caller's cancellation token fired or its deadline elapsed."""


def _require_non_empty(value: str, field_name: str) -> str:
    """Strip a URL or client name, rejecting blank values."""
    cleaned = value.strip() if isinstance(value, str) else ""
    if not cleaned:
        raise ValueError(f"{field_name} must be a non-empty string.")
    return cleaned


def _auth_headers(token: str | None) -> dict[str, str]:
    if token is None or not token.strip():
        return {}
    return {"Authorization": f"Bearer {token.strip()}"}


async def _read_upload(upload: UploadSource) -> FilePart:
    content = upload.read()
    if inspect.isawaitable(content):
        content = await content
    return FilePart(
        filename=upload.filename or "",
        content=bytes(content),
        content_type=upload.content_type or DEFAULT_UPLOAD_CONTENT_TYPE,
    )


def _field_parts(fields: Mapping[str, Any]) -> list[tuple[str, Any]]:
    """Render plain form fields as filename-less multipart parts."""
    parts: list[tuple[str, Any]] = []
    for name, value in fields.items():
        values = value if isinstance(value, (list, tuple)) else [value]
        for item in values:
            parts.append((name, (None, str(item).encode("utf-8"))))
    return parts


class HttpFacade:
    """Typed request/response pipeline shared by every outbound HTTP call."""

    def __init__(
        self,
        factory: ClientFactory,
        *,
        codec: JsonCodec | None = None,
        default_client: str = "default",
        owns_factory: bool = False,
    ) -> None:
        self._factory = factory
        self._codec = codec or PydanticJsonCodec()
        self._default_client = _require_non_empty(default_client, "default_client")
        self._owns_factory = owns_factory

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "HttpFacade":
        """Factory that builds the facade and its named client pool from Settings."""
        settings = settings or Settings.load()
        return cls(
            NamedClientFactory(settings),
            default_client=settings.default_client,
            owns_factory=True,
        )

    async def aclose(self) -> None:
        """Close the pooled clients when the facade created them."""
        if self._owns_factory and isinstance(self._factory, NamedClientFactory):
            await self._factory.aclose()

    async def __aenter__(self) -> "HttpFacade":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def get(
        self,
        url: str,
        *,
        client_name: str | None = None,
        response_type: Any = Any,
        error_type: Any = Any,
        token: str | None = None,
        cancellation: CancellationToken | None = None,
    ) -> Outcome[Any, Any]:
        """Send a GET request and decode the JSON response."""
        descriptor = self._describe("GET", url, client_name, token)
        response = await self._send(descriptor, cancellation)
        return self._interpret(response, descriptor, response_type, error_type)

    async def get_with_query(
        self,
        url: str,
        request_model: Any,
        *,
        client_name: str | None = None,
        response_type: Any = Any,
        error_type: Any = Any,
        token: str | None = None,
        cancellation: CancellationToken | None = None,
    ) -> Outcome[Any, Any]:
        """
        Send a GET request whose query string is projected from ``request_model``.

        Example: ``await facade.get_with_query("https://api/items", ItemFilter(tags=["a"]))``
        """
        _require_non_empty(url, "url")
        descriptor = self._describe("GET", append_query_string(url, request_model), client_name, token)
        response = await self._send(descriptor, cancellation)
        return self._interpret(response, descriptor, response_type, error_type)

    async def get_bytes(
        self,
        url: str,
        *,
        client_name: str | None = None,
        token: str | None = None,
        cancellation: CancellationToken | None = None,
    ) -> bytes:
        """Download the raw body; non-success statuses raise ``httpx.HTTPStatusError`` once read."""
        descriptor = self._describe("GET", url, client_name, token)
        response = await self._send(descriptor, cancellation)
        content = response.content
        response.raise_for_status()
        return content

    async def post_json(
        self,
        url: str,
        data: Any,
        *,
        client_name: str | None = None,
        response_type: Any = Any,
        error_type: Any = Any,
        token: str | None = None,
        cancellation: CancellationToken | None = None,
    ) -> Outcome[Any, Any]:
        """Send a POST request with a JSON body."""
        descriptor = self._describe("POST", url, client_name, token, BodyKind.JSON, data)
        response = await self._send(descriptor, cancellation)
        return self._interpret(response, descriptor, response_type, error_type)

    async def post_files(
        self,
        url: str,
        files: Iterable[UploadSource] | None,
        path: str | None,
        *,
        client_name: str | None = None,
        response_type: Any = Any,
        error_type: Any = Any,
        token: str | None = None,
        cancellation: CancellationToken | None = None,
    ) -> Outcome[Any, Any]:
        """
        Upload files to a single server path.

        The multipart body carries one ``path`` field followed by one ``files`` part
        per upload, each keeping its filename and declared content type.
        """
        descriptor = self._describe("POST", url, client_name, token, BodyKind.FILES, (path or "", ()))

        async def _read_and_transmit() -> httpx.Response:
            parts = tuple([await _read_upload(upload) for upload in files or ()])
            return await self._transmit(replace(descriptor, body=(path or "", parts)))

        response = await self._run_cancellable(descriptor, cancellation, _read_and_transmit)
        return self._interpret(response, descriptor, response_type, error_type)

    async def post_form_data(
        self,
        url: str,
        form: MultipartForm,
        *,
        client_name: str | None = None,
        response_type: Any = Any,
        error_type: Any = Any,
        cancellation: CancellationToken | None = None,
    ) -> Outcome[Any, Any]:
        """Send a POST request with a multipart body prepared by the caller."""
        descriptor = self._describe("POST", url, client_name, None, BodyKind.MULTIPART, form)
        response = await self._send(descriptor, cancellation)
        return self._interpret(response, descriptor, response_type, error_type)

    async def post_form_urlencoded(
        self,
        url: str,
        form_data: Mapping[str, str],
        *,
        client_name: str | None = None,
        response_type: Any = Any,
        error_type: Any = Any,
        token: str | None = None,
        cancellation: CancellationToken | None = None,
    ) -> Outcome[Any, Any]:
        descriptor = self._describe(
            "POST", url, client_name, token, BodyKind.FORM_URLENCODED, dict(form_data)
        )
        response = await self._send(descriptor, cancellation)
        return self._interpret(response, descriptor, response_type, error_type)

    async def patch_json(
        self,
        url: str,
        data: Any,
        *,
        client_name: str | None = None,
        response_type: Any = Any,
        error_type: Any = Any,
        cancellation: CancellationToken | None = None,
    ) -> Outcome[Any, Any]:
        """Send a PATCH request with a JSON body."""
        descriptor = self._describe("PATCH", url, client_name, None, BodyKind.JSON, data)
        response = await self._send(descriptor, cancellation)
        return self._interpret(response, descriptor, response_type, error_type)

    async def put_json(
        self,
        url: str,
        data: Any,
        *,
        client_name: str | None = None,
        response_type: Any = Any,
        error_type: Any = Any,
        cancellation: CancellationToken | None = None,
    ) -> Outcome[Any, Any]:
        """Send a PUT request with a JSON body."""
        descriptor = self._describe("PUT", url, client_name, None, BodyKind.JSON, data)
        response = await self._send(descriptor, cancellation)
        return self._interpret(response, descriptor, response_type, error_type)

    async def delete(
        self,
        url: str,
        *,
        client_name: str | None = None,
        cancellation: CancellationToken | None = None,
    ) -> bool:
        """Send a DELETE request; True iff the status is 2xx. The body is never decoded."""
        descriptor = self._describe("DELETE", url, client_name, None)
        response = await self._send(descriptor, cancellation)
        return response.is_success

    def _describe(
        self,
        method: str,
        url: str,
        client_name: str | None,
        token: str | None,
        body_kind: BodyKind = BodyKind.NONE,
        body: Any = None,
    ) -> RequestDescriptor:
        return RequestDescriptor(
            method=method,
            url=_require_non_empty(url, "url"),
            client_name=_require_non_empty(
                self._default_client if client_name is None else client_name, "client_name"
            ),
            headers=_auth_headers(token),
            body_kind=body_kind,
            body=body,
        )

    def _resolve_client(self, name: str) -> httpx.AsyncClient:
        return self._factory.get_client(name)

    def _build_request(self, client: httpx.AsyncClient, descriptor: RequestDescriptor) -> httpx.Request:
        headers = dict(descriptor.headers)
        kind = descriptor.body_kind
        method, url = descriptor.method, descriptor.url

        if kind is BodyKind.JSON:
            headers["Content-Type"] = JSON_CONTENT_TYPE
            content = self._codec.encode(descriptor.body).encode("utf-8")
            return client.build_request(method, url, headers=headers, content=content)

        if kind is BodyKind.FILES:
            path, parts = descriptor.body
            files: list[tuple[str, Any]] = [("path", (None, path.encode("utf-8")))]
            files.extend(
                ("files", (part.filename, part.content, part.content_type)) for part in parts
            )
            return client.build_request(method, url, headers=headers, files=files)

        if kind is BodyKind.MULTIPART:
            form: MultipartForm = descriptor.body
            if form.files:
                return client.build_request(
                    method, url, headers=headers, data=dict(form.fields), files=list(form.files)
                )
            # httpx only emits multipart when parts are present
            return client.build_request(method, url, headers=headers, files=_field_parts(form.fields))

        if kind is BodyKind.FORM_URLENCODED:
            headers["Content-Type"] = FORM_URLENCODED_CONTENT_TYPE
            return client.build_request(method, url, headers=headers, data=descriptor.body)

        return client.build_request(method, url, headers=headers)

    async def _send(
        self,
        descriptor: RequestDescriptor,
        cancellation: CancellationToken | None,
    ) -> httpx.Response:
        return await self._run_cancellable(descriptor, cancellation, lambda: self._transmit(descriptor))

    async def _run_cancellable(
        self,
        descriptor: RequestDescriptor,
        cancellation: CancellationToken | None,
        work: Callable[[], Awaitable[httpx.Response]],
    ) -> httpx.Response:
        """Run every suspension point of one call (body reads included) under the token."""
        if cancellation is None:
            return await work()

        if cancellation.cancelled:
            raise RequestCancelledError(
                f"{descriptor.method} {descriptor.url} was cancelled before dispatch."
            )
        response: httpx.Response | None = None
        with cancellation.bind():
            response = await work()
        if response is None:
            logger.info(
                "HTTP request cancelled",
                extra={"method": descriptor.method, "url": descriptor.url, "client": descriptor.client_name},
            )
            raise RequestCancelledError(f"{descriptor.method} {descriptor.url} was cancelled.")
        return response

    async def _transmit(self, descriptor: RequestDescriptor) -> httpx.Response:
        client = self._resolve_client(descriptor.client_name)
        request = self._build_request(client, descriptor)
        context = {
            "method": descriptor.method,
            "url": str(request.url),
            "client": descriptor.client_name,
        }
        logger.debug("Dispatching HTTP request", extra=context)
        return await self._dispatch(client, request, context)

    async def _dispatch(
        self,
        client: httpx.AsyncClient,
        request: httpx.Request,
        context: dict[str, Any],
    ) -> httpx.Response:
        try:
            return await client.send(request)
        except httpx.RequestError:
            logger.error("HTTP transport failure", extra=context, exc_info=True)
            raise

    def _interpret(
        self,
        response: httpx.Response,
        descriptor: RequestDescriptor,
        response_type: Any,
        error_type: Any,
    ) -> Outcome[Any, Any]:
        content = response.text
        if not response.is_success:
            logger.warning(
                "HTTP request returned non-success status",
                extra={
                    "method": descriptor.method,
                    "url": descriptor.url,
                    "client": descriptor.client_name,
                    "status_code": response.status_code,
                },
            )
            return Failure(self._decode(content, error_type, response.status_code), response.status_code)
        return Success(self._decode(content, response_type, response.status_code), response.status_code)

    def _decode(self, content: str, target: Any, status_code: int) -> Any:
        try:
            return self._codec.decode(content, target)
        except ValueError as exc:
            logger.error(
                "Failed to decode response body",
                extra={"target_type": type_name(target), "status_code": status_code},
            )
            raise ResponseDecodeError(target, content, status_code) from exc
