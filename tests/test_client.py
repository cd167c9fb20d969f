import json
from typing import Any, Optional

import anyio
import httpx
import pytest
from pydantic import BaseModel

from httpfacade.cancellation import CancellationToken
from httpfacade.client import HttpFacade, RequestCancelledError, ResponseDecodeError
from httpfacade.http_client import NamedClientFactory
from httpfacade.models import Failure, MultipartForm, Success, UploadedFile
from httpfacade.settings import Settings


class Item(BaseModel):
    id: int
    name: str


class ApiError(BaseModel):
    message: str


class ItemFilter(BaseModel):
    tags: Optional[list[str]] = None
    page: Optional[int] = None


def _build_facade(handler: httpx.MockTransport, name: str = "default") -> HttpFacade:
    factory = NamedClientFactory(Settings())
    factory.register(name, httpx.AsyncClient(transport=handler, base_url="http://mock.local"))
    return HttpFacade(factory, owns_factory=True)


@pytest.mark.anyio
async def test_get_decodes_success_payload() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.method == "GET"
        assert request.url.path == "/items/1"
        assert "authorization" not in request.headers
        return httpx.Response(200, json={"id": 1, "name": "widget"})

    facade = _build_facade(httpx.MockTransport(handler))
    result = await facade.get("/items/1", response_type=Item)
    assert isinstance(result, Success)
    assert result.ok
    assert result.payload == Item(id=1, name="widget")
    assert result.status_code == 200
    await facade.aclose()


@pytest.mark.anyio
async def test_get_attaches_bearer_token_per_request() -> None:
    seen: list[str | None] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request.headers.get("authorization"))
        return httpx.Response(200, json={})

    facade = _build_facade(httpx.MockTransport(handler))
    await facade.get("/a", token="secret-token")
    await facade.get("/b")
    await facade.get("/c", token="   ")
    assert seen == ["Bearer secret-token", None, None]
    await facade.aclose()


@pytest.mark.anyio
async def test_get_returns_failure_payload_for_error_status() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(404, json={"message": "not found"})

    facade = _build_facade(httpx.MockTransport(handler))
    result = await facade.get("/items/9", response_type=Item, error_type=ApiError)
    assert isinstance(result, Failure)
    assert not result.ok
    assert result.payload == ApiError(message="not found")
    assert result.status_code == 404
    await facade.aclose()


@pytest.mark.anyio
async def test_error_status_with_undecodable_body_raises() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(502, text="Bad gateway from mock")

    facade = _build_facade(httpx.MockTransport(handler))
    with pytest.raises(ResponseDecodeError) as exc:
        await facade.get("/items/1", error_type=ApiError)
    assert exc.value.status_code == 502
    assert exc.value.content == "Bad gateway from mock"
    assert "ApiError" in str(exc.value)
    await facade.aclose()


@pytest.mark.anyio
async def test_success_status_with_invalid_json_raises_descriptive_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="not-json")

    facade = _build_facade(httpx.MockTransport(handler))
    with pytest.raises(ResponseDecodeError) as exc:
        await facade.get("/items/1", response_type=Item)
    assert "not-json" in str(exc.value)
    assert "Item" in str(exc.value)
    assert exc.value.target_type is Item
    await facade.aclose()


@pytest.mark.anyio
async def test_empty_success_body_requires_nullable_type() -> None:
    facade = _build_facade(httpx.MockTransport(lambda request: httpx.Response(204)))

    result = await facade.get("/items/1", response_type=Optional[Item])
    assert isinstance(result, Success)
    assert result.payload is None

    with pytest.raises(ResponseDecodeError):
        await facade.get("/items/1", response_type=Item)
    await facade.aclose()


@pytest.mark.anyio
async def test_get_with_query_projects_request_model() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"url": str(request.url)})

    facade = _build_facade(httpx.MockTransport(handler))
    result = await facade.get_with_query("/items?sort=name", ItemFilter(tags=["a", "b"], page=2))
    assert result.payload["url"] == "http://mock.local/items?sort=name&tags=a%2Cb&page=2"

    result = await facade.get_with_query("/items", ItemFilter())
    assert result.payload["url"] == "http://mock.local/items"
    await facade.aclose()


@pytest.mark.anyio
async def test_post_json_round_trips_echoed_body() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.headers["content-type"] == "application/json; charset=utf-8"
        return httpx.Response(201, content=request.content)

    payload = {"name": "widget", "tags": ["a", "b"], "price": 1.5, "stock": None}
    facade = _build_facade(httpx.MockTransport(handler))

    result = await facade.post_json("/items", payload)
    assert result.payload == payload

    model_result = await facade.post_json("/items", Item(id=3, name="gear"), response_type=Item)
    assert model_result.payload == Item(id=3, name="gear")
    await facade.aclose()


@pytest.mark.anyio
async def test_patch_and_put_send_json_with_their_methods() -> None:
    methods: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        methods.append(request.method)
        assert json.loads(request.content) == {"name": "renamed"}
        return httpx.Response(200, json={"id": 1, "name": "renamed"})

    facade = _build_facade(httpx.MockTransport(handler))
    patched = await facade.patch_json("/items/1", {"name": "renamed"}, response_type=Item)
    replaced = await facade.put_json("/items/1", {"name": "renamed"}, response_type=Item)
    assert methods == ["PATCH", "PUT"]
    assert patched.payload == replaced.payload == Item(id=1, name="renamed")
    await facade.aclose()


@pytest.mark.anyio
async def test_post_files_builds_path_and_file_parts() -> None:
    captured: dict[str, Any] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["content_type"] = request.headers["content-type"]
        captured["body"] = request.read().decode()
        return httpx.Response(200, json={"uploaded": 2})

    facade = _build_facade(httpx.MockTransport(handler))
    files = [
        UploadedFile(filename="a.txt", content=b"alpha", content_type="text/plain"),
        UploadedFile(filename="b.txt", content=b"beta"),
    ]
    result = await facade.post_files("/upload", files, "/docs", token="t")
    assert result.payload == {"uploaded": 2}

    body = captured["body"]
    assert captured["content_type"].startswith("multipart/form-data")
    assert body.count('name="path"') == 1
    assert body.count('name="files"') == 2
    assert 'filename="a.txt"' in body
    assert 'filename="b.txt"' in body
    assert "Content-Type: text/plain" in body
    assert "Content-Type: application/octet-stream" in body
    assert "/docs" in body
    await facade.aclose()


@pytest.mark.anyio
async def test_post_files_reads_async_upload_sources() -> None:
    class AsyncUpload:
        filename = "report.csv"
        content_type = None

        async def read(self) -> bytes:
            return b"x,y"

    bodies: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        bodies.append(request.read().decode())
        return httpx.Response(200, json={})

    facade = _build_facade(httpx.MockTransport(handler))
    await facade.post_files("/upload", [AsyncUpload()], None)
    await facade.post_files("/upload", None, "/empty")

    assert 'filename="report.csv"' in bodies[0]
    assert "x,y" in bodies[0]
    assert bodies[1].count('name="path"') == 1
    assert 'name="files"' not in bodies[1]
    await facade.aclose()


@pytest.mark.anyio
async def test_post_form_data_passes_multipart_through() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        body = request.read().decode("utf-8", errors="replace")
        assert request.headers["content-type"].startswith("multipart/form-data")
        assert 'name="title"' in body
        assert 'filename="logo.png"' in body
        assert "authorization" not in request.headers
        return httpx.Response(200, json={"ok": True})

    facade = _build_facade(httpx.MockTransport(handler))
    form = MultipartForm(fields={"title": "Logo"}, files=[("image", ("logo.png", b"\x89PNG", "image/png"))])
    result = await facade.post_form_data("/media", form)
    assert result.payload == {"ok": True}
    await facade.aclose()


@pytest.mark.anyio
async def test_post_form_urlencoded_encodes_mapping() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.headers["content-type"] == "application/x-www-form-urlencoded"
        assert request.headers["authorization"] == "Bearer abc"
        assert request.read() == b"grant_type=client_credentials&scope=read+write"
        return httpx.Response(200, json={"access_token": "xyz"})

    facade = _build_facade(httpx.MockTransport(handler))
    result = await facade.post_form_urlencoded(
        "/token", {"grant_type": "client_credentials", "scope": "read write"}, token="abc"
    )
    assert result.payload == {"access_token": "xyz"}
    await facade.aclose()


@pytest.mark.anyio
@pytest.mark.parametrize(
    ("status_code", "expected"),
    [(200, True), (204, True), (299, True), (301, False), (404, False), (500, False)],
)
async def test_delete_reports_success_without_decoding(status_code: int, expected: bool) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.method == "DELETE"
        return httpx.Response(status_code, text="<<definitely not json>>")

    facade = _build_facade(httpx.MockTransport(handler))
    assert await facade.delete("/items/1") is expected
    await facade.aclose()


@pytest.mark.anyio
async def test_get_bytes_returns_raw_content_and_raises_on_error_status() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/files/ok":
            return httpx.Response(200, content=b"\x00\x01binary")
        return httpx.Response(403, content=b"denied")

    facade = _build_facade(httpx.MockTransport(handler))
    assert await facade.get_bytes("/files/ok") == b"\x00\x01binary"
    with pytest.raises(httpx.HTTPStatusError) as exc:
        await facade.get_bytes("/files/secret")
    assert exc.value.response.status_code == 403
    assert exc.value.response.content == b"denied"
    await facade.aclose()


@pytest.mark.anyio
async def test_named_clients_are_selected_by_name() -> None:
    factory = NamedClientFactory(Settings())
    factory.register(
        "billing",
        httpx.AsyncClient(
            transport=httpx.MockTransport(lambda request: httpx.Response(200, json={"svc": "billing"})),
            base_url="http://billing.local",
        ),
    )
    factory.register(
        "default",
        httpx.AsyncClient(
            transport=httpx.MockTransport(lambda request: httpx.Response(200, json={"svc": "default"})),
            base_url="http://default.local",
        ),
    )
    facade = HttpFacade(factory, owns_factory=True)
    assert (await facade.get("/x", client_name="billing")).payload == {"svc": "billing"}
    assert (await facade.get("/x")).payload == {"svc": "default"}
    await facade.aclose()


@pytest.mark.anyio
async def test_transport_errors_propagate_unmodified() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("mock connect failure", request=request)

    facade = _build_facade(httpx.MockTransport(handler))
    with pytest.raises(httpx.ConnectError, match="mock connect failure"):
        await facade.get("/items")
    await facade.aclose()


@pytest.mark.anyio
async def test_cancelling_token_mid_request_raises_cancellation() -> None:
    async def handler(request: httpx.Request) -> httpx.Response:
        await anyio.sleep(10)
        return httpx.Response(200, text="not-json")

    facade = _build_facade(httpx.MockTransport(handler))
    token = CancellationToken()

    async def cancel_soon() -> None:
        await anyio.sleep(0.05)
        token.cancel()

    async with anyio.create_task_group() as tg:
        tg.start_soon(cancel_soon)
        with pytest.raises(RequestCancelledError):
            await facade.get("/slow", response_type=Item, cancellation=token)
    await facade.aclose()


@pytest.mark.anyio
async def test_token_deadline_and_precancelled_token() -> None:
    calls: list[str] = []

    async def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request.url.path)
        await anyio.sleep(10)
        return httpx.Response(200, json={})

    facade = _build_facade(httpx.MockTransport(handler))
    with pytest.raises(RequestCancelledError):
        await facade.get("/slow", cancellation=CancellationToken(timeout=0.05))

    cancelled = CancellationToken()
    cancelled.cancel()
    with pytest.raises(RequestCancelledError):
        await facade.delete("/never", cancellation=cancelled)
    assert calls == ["/slow"]
    await facade.aclose()


@pytest.mark.anyio
async def test_validation_rejects_empty_arguments() -> None:
    facade = _build_facade(httpx.MockTransport(lambda request: httpx.Response(200)))
    with pytest.raises(ValueError):
        await facade.get("   ")
    with pytest.raises(ValueError):
        await facade.delete("/items/1", client_name=" ")
    await facade.aclose()


@pytest.mark.anyio
async def test_post_files_deadline_covers_slow_upload_reads() -> None:
    reads: list[str] = []
    sent: list[str] = []

    class SlowUpload:
        filename = "big.bin"
        content_type = "application/octet-stream"

        async def read(self) -> bytes:
            reads.append(self.filename)
            await anyio.sleep(10)
            return b"late"

    def handler(request: httpx.Request) -> httpx.Response:
        sent.append(request.url.path)
        return httpx.Response(200, json={})

    facade = _build_facade(httpx.MockTransport(handler))
    with anyio.fail_after(5):
        with pytest.raises(RequestCancelledError):
            await facade.post_files("/up", [SlowUpload()], "/", cancellation=CancellationToken(timeout=0.05))
    assert reads == ["big.bin"]
    assert sent == []

    cancelled = CancellationToken()
    cancelled.cancel()
    with pytest.raises(RequestCancelledError):
        await facade.post_files("/up", [SlowUpload()], "/", cancellation=cancelled)
    assert reads == ["big.bin"]
    await facade.aclose()
