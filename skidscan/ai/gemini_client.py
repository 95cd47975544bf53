"""Gemini client over the REST streaming endpoint (server-sent events)."""

import base64
import json
from collections.abc import AsyncIterator
from typing import Any

import httpx

from skidscan.ai.base import BaseAiClient
from skidscan.ai.exceptions import (
    AiAuthenticationError,
    AiClientError,
    AiNetworkError,
    AiStreamError,
)
from skidscan.ai.models import AiModel, ChatMessage, DeltaCallback, GeminiConfig

DEFAULT_GEMINI_BASE_URL = "https://generativelanguage.googleapis.com"
DEFAULT_GEMINI_MODEL = "gemini-2.5-pro"
_API_VERSION = "v1beta"


class GeminiClient(BaseAiClient):
    """Streams Gemini `streamGenerateContent` deltas; accepts images and PDFs."""

    def __init__(
        self,
        *,
        api_key: str,
        base_url: str | None = None,
        config: GeminiConfig | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        super().__init__()
        self._api_key = api_key
        self._base_url = (base_url or DEFAULT_GEMINI_BASE_URL).rstrip("/")
        self._config = config or GeminiConfig()
        self._owns_client = http_client is None
        self._http = http_client or httpx.AsyncClient(timeout=self._config.timeout_seconds)

    async def send_media(
        self,
        media: bytes,
        mime_type: str,
        prompt: str | None = None,
        model: str | None = None,
        on_delta: DeltaCallback | None = None,
    ) -> str:
        contents: list[dict[str, Any]] = []
        if self._system_prompt:
            contents.append({"role": "user", "parts": [{"text": self._system_prompt}]})
        parts: list[dict[str, Any]] = []
        if prompt:
            parts.append({"text": prompt})
        parts.append(
            {
                "inline_data": {
                    "mime_type": mime_type,
                    "data": base64.b64encode(media).decode("ascii"),
                }
            }
        )
        contents.append({"role": "user", "parts": parts})
        return await self._stream_generate(self._request_body(contents), model, on_delta)

    async def send_chat(
        self,
        messages: list[ChatMessage],
        model: str | None = None,
        on_delta: DeltaCallback | None = None,
    ) -> str:
        system_parts = [m.content for m in messages if m.role == "system"]
        if self._system_prompt:
            system_parts.insert(0, self._system_prompt)
        contents = [
            {
                "role": "model" if m.role == "assistant" else "user",
                "parts": [{"text": m.content}],
            }
            for m in messages
            if m.role != "system"
        ]
        body = self._request_body(contents)
        if system_parts:
            body["systemInstruction"] = {"parts": [{"text": "\n\n".join(system_parts)}]}
        return await self._stream_generate(body, model, on_delta)

    async def get_available_models(self) -> list[AiModel]:
        models: list[AiModel] = []
        page_token: str | None = None
        while True:
            params = {"pageToken": page_token} if page_token else None
            try:
                resp = await self._http.get(
                    f"{self._base_url}/{_API_VERSION}/models",
                    params=params,
                    headers=self._headers(),
                )
            except httpx.HTTPError as exc:
                raise AiNetworkError(f"Gemini network error: {exc}") from exc
            _raise_for_status(resp.status_code, resp.text)
            data = resp.json()
            for entry in data.get("models", []):
                name = entry.get("name")
                if not name:
                    continue
                models.append(AiModel(name=name, display_name=entry.get("displayName") or name))
            page_token = data.get("nextPageToken")
            if not page_token:
                return models

    async def aclose(self) -> None:
        if self._owns_client:
            await self._http.aclose()

    def _headers(self) -> dict[str, str]:
        return {"x-goog-api-key": self._api_key}

    def _request_body(self, contents: list[dict[str, Any]]) -> dict[str, Any]:
        return {
            "contents": contents,
            "generationConfig": {
                "thinkingConfig": {"thinkingBudget": self._config.thinking_budget},
            },
            "safetySettings": [
                {"category": s.category, "threshold": s.threshold}
                for s in self._config.safety_settings
            ],
        }

    async def _stream_generate(
        self,
        body: dict[str, Any],
        model: str | None,
        on_delta: DeltaCallback | None,
    ) -> str:
        model_name = (model or DEFAULT_GEMINI_MODEL).removeprefix("models/")
        url = f"{self._base_url}/{_API_VERSION}/models/{model_name}:streamGenerateContent"
        result = ""
        finish_reason: str | None = None
        try:
            async with self._http.stream(
                "POST",
                url,
                params={"alt": "sse"},
                json=body,
                headers=self._headers(),
            ) as resp:
                if resp.status_code >= 400:
                    await resp.aread()
                    _raise_for_status(resp.status_code, resp.text)
                async for payload in _iter_sse_data(resp):
                    text = _frame_text(payload)
                    finish_reason = _finish_reason(payload) or finish_reason
                    if text:
                        result += text
                        if on_delta is not None:
                            on_delta(text)
        except AiClientError:
            raise
        except (httpx.RemoteProtocolError, httpx.ReadError) as exc:
            raise AiStreamError(f"Gemini stream terminated abnormally: {exc}") from exc
        except httpx.HTTPError as exc:
            raise AiNetworkError(f"Gemini network error: {exc}") from exc
        if finish_reason is None:
            raise AiStreamError("Gemini stream ended without a finish reason")
        if finish_reason != "STOP":
            raise AiStreamError(f"Gemini stopped generating: {finish_reason}")
        return result


async def _iter_sse_data(resp: httpx.Response) -> AsyncIterator[dict[str, Any]]:
    """Yield the decoded JSON payload of every SSE event."""
    buffer: list[str] = []
    async for line in resp.aiter_lines():
        if not line.strip():
            if buffer:
                yield _decode_frame("\n".join(buffer))
                buffer = []
            continue
        if line.startswith("data:"):
            buffer.append(line[len("data:"):].lstrip())
    if buffer:
        yield _decode_frame("\n".join(buffer))


def _decode_frame(data: str) -> dict[str, Any]:
    try:
        payload = json.loads(data)
    except json.JSONDecodeError as exc:
        raise AiStreamError(f"Malformed Gemini stream frame: {exc}") from exc
    if not isinstance(payload, dict):
        raise AiStreamError("Malformed Gemini stream frame: expected an object")
    return payload


def _frame_text(payload: dict[str, Any]) -> str:
    error = payload.get("error")
    if error:
        message = error.get("message") if isinstance(error, dict) else str(error)
        raise AiStreamError(f"Gemini stream error: {message}")
    block_reason = (payload.get("promptFeedback") or {}).get("blockReason")
    if block_reason:
        raise AiStreamError(f"Gemini blocked the prompt: {block_reason}")
    texts: list[str] = []
    for candidate in payload.get("candidates") or []:
        for part in (candidate.get("content") or {}).get("parts") or []:
            if part.get("thought"):
                continue
            text = part.get("text")
            if isinstance(text, str):
                texts.append(text)
    return "".join(texts)


def _finish_reason(payload: dict[str, Any]) -> str | None:
    for candidate in payload.get("candidates") or []:
        reason = candidate.get("finishReason")
        if reason and reason != "FINISH_REASON_UNSPECIFIED":
            return str(reason)
    return None


def _raise_for_status(status: int, text: str) -> None:
    if status < 400:
        return
    message = f"HTTP {status}"
    try:
        detail = json.loads(text).get("error", {}).get("message")
        if isinstance(detail, str) and detail.strip():
            message = f"{message}: {detail}"
    except (ValueError, AttributeError):
        if text.strip():
            message = f"{message}: {text.strip()}"
    if status in (401, 403) or "API_KEY_INVALID" in text:
        raise AiAuthenticationError(f"Gemini authentication failed: {message}")
    raise AiNetworkError(f"Gemini API error: {message}")
