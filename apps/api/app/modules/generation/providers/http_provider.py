from __future__ import annotations

import base64
from typing import Any, Dict, List, Optional

import httpx

from app.core.logging import emit

from .base import GenerationKind, GenerationResult


class HttpProvider:
    """
    Calls an external image service:
      POST {base_url}/generate  {"kind", "input_refs", "prompt"}
    Expected JSON reply: {"image_base64": "..."} or {"url": "..."}; {"error": "..."} on failure.
    Transport and status errors are folded into a failed GenerationResult.
    """
    name = "http"

    def __init__(
        self,
        base_url: str,
        api_key: Optional[str] = None,
        timeout: float = 180.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        headers = {"Authorization": f"Bearer {api_key}"} if api_key else {}
        self._client = client or httpx.AsyncClient(timeout=timeout, headers=headers)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def generate(
        self,
        *,
        kind: GenerationKind,
        input_refs: List[str],
        prompt: str,
        request_id: Optional[str] = None,
    ) -> GenerationResult:
        payload: Dict[str, Any] = {"kind": kind.value, "input_refs": list(input_refs), "prompt": prompt}
        headers = {"X-Request-Id": request_id} if request_id else None
        try:
            resp = await self._client.post(f"{self.base_url}/generate", json=payload, headers=headers)
            resp.raise_for_status()
            data = resp.json()
        except httpx.TimeoutException as e:
            return GenerationResult.failed(f"request timed out: {e}")
        except httpx.HTTPStatusError as e:
            body = e.response.text[:300]
            emit("warning", "generation.http_status", f"status {e.response.status_code}", request_id, __name__, kind=kind.value)
            return GenerationResult.failed(f"{e.response.status_code}: {body}", details={"status_code": e.response.status_code})
        except httpx.RequestError as e:
            return GenerationResult.failed(f"network error: {e}")
        except ValueError as e:
            return GenerationResult.failed(f"invalid response body: {e}")

        if not isinstance(data, dict):
            return GenerationResult.failed("invalid response body: expected object")
        if data.get("error"):
            return GenerationResult.failed(str(data["error"]))
        if data.get("image_base64"):
            try:
                return GenerationResult.ok(base64.b64decode(data["image_base64"]))
            except ValueError as e:
                return GenerationResult.failed(f"invalid image payload: {e}")
        if data.get("url"):
            return GenerationResult.ok(str(data["url"]))
        return GenerationResult.failed("no image generated")
