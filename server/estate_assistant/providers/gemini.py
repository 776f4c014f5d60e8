from __future__ import annotations
import asyncio
import base64
import json
import logging
from typing import Any, AsyncIterator, Dict, List, Optional

import httpx

from estate_assistant.config import Settings, get_settings
from estate_assistant.core.errors import ProviderError, ProviderNotConfigured
from estate_assistant.prompting.assembler import (
    BlockCompletion,
    CompletionPayload,
    FileBlock,
    TextBlock,
    TextCompletion,
)

logger = logging.getLogger(__name__)


def _text_of(obj: Dict[str, Any]) -> str:
    candidates = obj.get("candidates") or []
    if not candidates:
        return ""
    parts = (candidates[0].get("content") or {}).get("parts") or []
    return "".join(p.get("text") or "" for p in parts)


class GeminiProvider:
    id = "gemini"

    def __init__(self, settings: Optional[Settings] = None, transport: Optional[httpx.AsyncBaseTransport] = None) -> None:
        self.settings = settings or get_settings()
        self.transport = transport

    def _to_gemini_payload(self, payload: CompletionPayload) -> Dict[str, Any]:
        contents: List[Dict[str, Any]] = []
        if isinstance(payload, TextCompletion):
            contents.append({"role": "user", "parts": [{"text": payload.prompt}]})
        else:
            for m in payload.messages:
                parts: List[Dict[str, Any]] = []
                for block in m.blocks:
                    if isinstance(block, TextBlock):
                        parts.append({"text": block.text})
                    elif isinstance(block, FileBlock):
                        parts.append({
                            "inline_data": {
                                "mime_type": block.mime_type,
                                "data": base64.b64encode(block.data).decode("ascii"),
                            }
                        })
                # Gemini roles: "user" and "model"
                role = "model" if m.role == "assistant" else "user"
                contents.append({"role": role, "parts": parts})
        return {
            "systemInstruction": {"parts": [{"text": payload.system}]},
            "contents": contents,
        }

    def _client(self) -> httpx.AsyncClient:
        timeout = httpx.Timeout(connect=10.0, read=self.settings.request_timeout, write=30.0, pool=10.0)
        return httpx.AsyncClient(
            base_url=self.settings.gemini_base_url,
            timeout=timeout,
            trust_env=True,
            transport=self.transport,
        )

    def _headers(self) -> Dict[str, str]:
        api_key = self.settings.llm_api_key
        if not api_key:
            raise ProviderNotConfigured("GEMINI_API_KEY is not set")
        # Header rather than ?key= so the key never shows up in logged URLs
        return {"x-goog-api-key": api_key, "Content-Type": "application/json"}

    def _use_mock(self) -> bool:
        return self.settings.mock_llm and not self.settings.llm_api_key

    async def stream(self, payload: TextCompletion, model: Optional[str] = None) -> AsyncIterator[str]:
        if self._use_mock():
            async for chunk in self._mock_stream(payload):
                yield chunk
            return

        headers = self._headers()
        model = model or self.settings.chat_model
        url = f"/models/{model}:streamGenerateContent"
        try:
            async with self._client() as client:
                async with client.stream(
                    "POST", url, params={"alt": "sse"}, headers=headers, json=self._to_gemini_payload(payload)
                ) as resp:
                    if resp.status_code >= 400:
                        body = (await resp.aread()).decode("utf-8", errors="ignore")
                        logger.error("Gemini stream failed status=%s body=%s", resp.status_code, body[:500])
                        raise ProviderError(f"Gemini returned {resp.status_code}")
                    async for line in resp.aiter_lines():
                        if not line.startswith("data: "):
                            continue
                        data = line[len("data: "):].strip()
                        if not data or data == "[DONE]":
                            continue
                        try:
                            obj = json.loads(data)
                        except json.JSONDecodeError:
                            logger.warning("Skipping unparseable Gemini event")
                            continue
                        if obj.get("error"):
                            logger.error("Gemini stream error event: %s", obj["error"])
                            raise ProviderError("Gemini reported an error mid-stream")
                        text = _text_of(obj)
                        if text:
                            yield text
        except httpx.HTTPError as e:
            logger.exception("Gemini stream transport error: %s", e)
            raise ProviderError("Gemini request failed") from e

    async def generate(self, payload: CompletionPayload, model: Optional[str] = None) -> str:
        if self._use_mock():
            return "".join([chunk async for chunk in self._mock_stream(payload)])

        headers = self._headers()
        if model is None:
            model = self.settings.attachment_model if isinstance(payload, BlockCompletion) else self.settings.chat_model
        url = f"/models/{model}:generateContent"
        try:
            async with self._client() as client:
                resp = await client.post(url, headers=headers, json=self._to_gemini_payload(payload))
        except httpx.HTTPError as e:
            logger.exception("Gemini transport error: %s", e)
            raise ProviderError("Gemini request failed") from e
        if resp.status_code >= 400:
            logger.error("Gemini generate failed status=%s body=%s", resp.status_code, resp.text[:500])
            raise ProviderError(f"Gemini returned {resp.status_code}")
        try:
            return _text_of(resp.json())
        except ValueError as e:
            raise ProviderError("Gemini returned invalid JSON") from e

    async def _mock_stream(self, payload: CompletionPayload) -> AsyncIterator[str]:
        if isinstance(payload, TextCompletion):
            said = payload.prompt.rsplit("User: ", 1)[-1]
        else:
            said = " ".join(b.text for b in payload.messages[-1].blocks if isinstance(b, TextBlock))
        words = f"[gemini-mock] You said: '{said}'".split()
        for i, word in enumerate(words):
            yield word + (" " if i < len(words) - 1 else "")
            await asyncio.sleep(0.05)


def get_provider() -> GeminiProvider:
    return GeminiProvider()
