"""OpenRouter chat-completions client for structured JSON responses."""
from __future__ import annotations

import json
import logging
import re
from typing import Any

import httpx

from realm_sync.config import settings
from realm_sync.errors import ExternalAPIError

logger = logging.getLogger(__name__)

_FENCE_OPEN_RE = re.compile(r"^```(?:json)?\s*\n?")
_FENCE_CLOSE_RE = re.compile(r"\n?```\s*$")


def strip_code_fences(text: str) -> str:
    """Drop a leading ```/```json fence and its closing fence, if present."""
    text = text.strip()
    if text.startswith("```"):
        text = _FENCE_CLOSE_RE.sub("", _FENCE_OPEN_RE.sub("", text))
    return text


def parse_json_content(text: str) -> Any:
    try:
        return json.loads(strip_code_fences(text))
    except json.JSONDecodeError as exc:
        raise ExternalAPIError(500, f"Failed to parse checker response: {exc.msg}") from exc


async def request_structured_completion(
    *,
    prompt: str,
    schema_name: str,
    schema: dict[str, Any],
    api_key: str,
    model: str,
    client: httpx.AsyncClient | None = None,
) -> Any:
    """POST a single-message completion with a strict JSON schema; return parsed JSON."""
    body = {
        "model": model,
        "messages": [{"role": "user", "content": prompt}],
        "response_format": {
            "type": "json_schema",
            "json_schema": {"name": schema_name, "strict": True, "schema": schema},
        },
    }
    headers = {
        "Authorization": f"Bearer {api_key}",
        "Content-Type": "application/json",
        "HTTP-Referer": "https://realmsync.app",
        "X-Title": "Realm Sync",
    }

    owns_client = client is None
    if client is None:
        client = httpx.AsyncClient(timeout=settings.LLM_TIMEOUT_S)
    try:
        resp = await client.post(settings.OPENROUTER_URL, json=body, headers=headers)
    except httpx.HTTPError as exc:
        raise ExternalAPIError(503, f"OpenRouter request failed: {exc}") from exc
    finally:
        if owns_client:
            await client.aclose()

    if resp.status_code >= 400:
        logger.warning("OpenRouter returned %s for model %s", resp.status_code, model)
        raise ExternalAPIError(
            resp.status_code,
            f"OpenRouter API error: {resp.reason_phrase} - {resp.text}",
        )

    data = resp.json()
    try:
        content = data["choices"][0]["message"]["content"]
    except (KeyError, IndexError, TypeError):
        content = None
    if not content:
        raise ExternalAPIError(500, "Invalid response from OpenRouter API")
    return parse_json_content(content)
