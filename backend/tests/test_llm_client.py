from __future__ import annotations

import json

import httpx
import pytest

from realm_sync.errors import ExternalAPIError
from realm_sync.llm_client import parse_json_content, request_structured_completion, strip_code_fences


def test_strip_code_fences_handles_json_label() -> None:
    assert strip_code_fences('```json\n{"a": 1}\n```') == '{"a": 1}'
    assert strip_code_fences('  {"a": 1}  ') == '{"a": 1}'


def test_parse_json_content_wraps_decode_errors() -> None:
    with pytest.raises(ExternalAPIError) as excinfo:
        parse_json_content("not json")
    assert excinfo.value.details["statusCode"] == 500


def _client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


async def test_request_sends_schema_and_parses_content() -> None:
    seen: dict = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["auth"] = request.headers["Authorization"]
        seen["body"] = json.loads(request.content)
        content = '```json\n{"alerts": [], "summary": {"totalIssues": 0}}\n```'
        return httpx.Response(200, json={"choices": [{"message": {"content": content}}]})

    async with _client(handler) as client:
        result = await request_structured_completion(
            prompt="check this", schema_name="continuity_check", schema={"type": "object"},
            api_key="k-123", model="test/model", client=client,
        )

    assert result == {"alerts": [], "summary": {"totalIssues": 0}}
    assert seen["auth"] == "Bearer k-123"
    assert seen["body"]["response_format"]["json_schema"]["name"] == "continuity_check"
    assert seen["body"]["messages"] == [{"role": "user", "content": "check this"}]


async def test_request_maps_upstream_errors() -> None:
    async with _client(lambda request: httpx.Response(429, text="slow down")) as client:
        with pytest.raises(ExternalAPIError) as excinfo:
            await request_structured_completion(
                prompt="p", schema_name="s", schema={}, api_key="k", model="m", client=client
            )
    assert excinfo.value.details["statusCode"] == 429


async def test_request_rejects_empty_choices() -> None:
    async with _client(lambda request: httpx.Response(200, json={"choices": []})) as client:
        with pytest.raises(ExternalAPIError):
            await request_structured_completion(
                prompt="p", schema_name="s", schema={}, api_key="k", model="m", client=client
            )


async def test_transport_failure_becomes_503() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    async with _client(handler) as client:
        with pytest.raises(ExternalAPIError) as excinfo:
            await request_structured_completion(
                prompt="p", schema_name="s", schema={}, api_key="k", model="m", client=client
            )
    assert excinfo.value.details["statusCode"] == 503
