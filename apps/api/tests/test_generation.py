import base64
import json
from dataclasses import replace

import httpx
import pytest

from app.modules.generation.errors import describe_generation_error
from app.modules.generation.providers.base import GenerationKind
from app.modules.generation.providers.http_provider import HttpProvider
from app.modules.generation.providers.mock_provider import MockProvider
from app.modules.generation.providers.registry import DisabledProvider, get_provider


def _http(handler) -> HttpProvider:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return HttpProvider("https://gen.test", client=client)


@pytest.mark.asyncio
async def test_mock_provider_is_deterministic() -> None:
    p = MockProvider()
    a = await p.generate(kind=GenerationKind.PAGE_ILLUSTRATION, input_refs=["r1"], prompt="a fox")
    b = await p.generate(kind=GenerationKind.PAGE_ILLUSTRATION, input_refs=["r1"], prompt="a fox")
    assert a.success and a.artifact == b.artifact
    assert json.loads(a.artifact)["kind"] == "page_illustration"


@pytest.mark.asyncio
async def test_mock_provider_force_fail_hook() -> None:
    res = await MockProvider().generate(kind=GenerationKind.CHARACTER_PORTRAIT, input_refs=[], prompt="x __force_fail__")
    assert not res.success
    assert res.error == "forced failure"


@pytest.mark.asyncio
async def test_http_provider_decodes_image() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        assert body["kind"] == "character_sketch"
        return httpx.Response(200, json={"image_base64": base64.b64encode(b"PNG").decode()})

    res = await _http(handler).generate(kind=GenerationKind.CHARACTER_SKETCH, input_refs=["r"], prompt="p")
    assert res.success
    assert res.artifact == b"PNG"


@pytest.mark.asyncio
async def test_http_provider_folds_status_errors_into_result() -> None:
    res = await _http(lambda r: httpx.Response(503, text="overloaded")).generate(
        kind=GenerationKind.PAGE_ILLUSTRATION, input_refs=[], prompt="p"
    )
    assert not res.success
    assert res.error.startswith("503")
    assert res.details == {"status_code": 503}


@pytest.mark.asyncio
async def test_http_provider_folds_transport_errors_into_result() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    res = await _http(handler).generate(kind=GenerationKind.PAGE_ILLUSTRATION, input_refs=[], prompt="p")
    assert not res.success
    assert "network error" in res.error


@pytest.mark.asyncio
async def test_http_provider_empty_reply_is_no_image() -> None:
    res = await _http(lambda r: httpx.Response(200, json={})).generate(
        kind=GenerationKind.PAGE_ILLUSTRATION, input_refs=[], prompt="p"
    )
    assert res.error == "no image generated"


def test_registry_respects_flag_and_name(settings) -> None:
    assert isinstance(get_provider(settings), MockProvider)
    assert isinstance(get_provider(replace(settings, provider_enabled=False)), DisabledProvider)
    with pytest.raises(ValueError):
        get_provider(replace(settings, generation_provider="http", generation_api_url=None))
    with pytest.raises(ValueError):
        get_provider(replace(settings, generation_provider="dalle"))


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("503 Service Unavailable", "overloaded"),
        ("429 quota exceeded", "Too many requests"),
        ("response blocked by safety system", "safety filters"),
        ("no image generated", "No image was generated"),
        ("generation timed out after 180s", "timed out"),
        ("network error: refused", "Network error"),
        ("weird", "Generation failed"),
    ],
)
def test_error_messages(raw: str, expected: str) -> None:
    assert expected in describe_generation_error(raw).message


def test_provider_json_message_wins() -> None:
    info = describe_generation_error('400: {"error": {"message": "Prompt too long"}}')
    assert info.message == "Prompt too long"
    assert info.technical_details.startswith("400")


@pytest.mark.asyncio
async def test_http_provider_aclose_closes_its_client() -> None:
    client = httpx.AsyncClient(transport=httpx.MockTransport(lambda request: httpx.Response(200, json={})))
    provider = HttpProvider("https://gen.test", client=client)
    await provider.aclose()
    assert client.is_closed
