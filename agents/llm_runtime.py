from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Sequence

import httpx

from settings import SETTINGS, Settings


logger = logging.getLogger(__name__)


class LLMCallError(RuntimeError):
    """A configured provider failed to produce a reply."""


@dataclass
class LLMResult:
    text: str
    provider: str
    model: str
    raw: Dict[str, Any]


class LLMRuntime:
    """Swappable chat runtime with a deterministic local fallback when no provider key is set."""

    def __init__(
        self,
        provider: str | None = None,
        model: str | None = None,
        settings: Settings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.settings = settings or SETTINGS
        self.provider = (provider or self.settings.default_llm_provider or "heuristic").lower()
        self.model = model or self.settings.default_model or "heuristic-local"
        self.transport = transport

    def available(self) -> bool:
        if self.provider == "anthropic":
            return bool(self.settings.anthropic_api_key)
        if self.provider in {"xai", "grok"}:
            return bool(self.settings.xai_api_key)
        if self.provider == "openai":
            return bool(self.settings.openai_api_key)
        return False

    async def generate(
        self,
        system_prompt: str,
        messages: Sequence[Dict[str, str]],
        response_format: str = "text",
        temperature: float = 0.2,
    ) -> LLMResult:
        turns = [{"role": m["role"], "content": m["content"]} for m in messages if m.get("content")]
        if not self.available():
            return self._heuristic_result(turns, response_format)
        try:
            if self.provider == "anthropic":
                return await self._generate_anthropic(system_prompt, turns, response_format, temperature)
            base_url = self.settings.openai_base_url if self.provider == "openai" else self.settings.xai_base_url
            api_key = self.settings.openai_api_key if self.provider == "openai" else self.settings.xai_api_key
            return await self._generate_chat_completions(base_url, api_key, system_prompt, turns, response_format, temperature)
        except (httpx.HTTPError, ValueError, KeyError, TypeError) as exc:
            logger.warning("llm_call_failed", extra={"provider": self.provider, "model": self.model, "error": str(exc)})
            raise LLMCallError(f"{self.provider} call failed: {exc}") from exc

    async def _generate_chat_completions(
        self,
        base_url: str,
        api_key: str,
        system_prompt: str,
        turns: List[Dict[str, str]],
        response_format: str,
        temperature: float,
    ) -> LLMResult:
        body: Dict[str, Any] = {
            "model": self.model,
            "messages": [{"role": "system", "content": system_prompt}, *turns],
            "temperature": temperature,
        }
        if response_format == "json":
            body["response_format"] = {"type": "json_object"}
        async with self._client() as client:
            resp = await client.post(
                f"{base_url.rstrip('/')}/chat/completions",
                headers={"Authorization": f"Bearer {api_key}"},
                json=body,
            )
            data = _json_object(resp)
        text = self._extract_chat_completion_text(data)
        return LLMResult(text=text, provider=self.provider, model=self.model, raw=data)

    async def _generate_anthropic(
        self,
        system_prompt: str,
        turns: List[Dict[str, str]],
        response_format: str,
        temperature: float,
    ) -> LLMResult:
        if response_format == "json":
            system_prompt = f"{system_prompt}\nReturn valid JSON only."
        async with self._client() as client:
            resp = await client.post(
                f"{self.settings.anthropic_base_url.rstrip('/')}/messages",
                headers={
                    "x-api-key": self.settings.anthropic_api_key,
                    "anthropic-version": "2023-06-01",
                    "content-type": "application/json",
                },
                json={
                    "model": self.model,
                    "max_tokens": 900,
                    "temperature": temperature,
                    "system": system_prompt,
                    "messages": turns,
                },
            )
            data = _json_object(resp)
        text_parts: List[str] = []
        for block in data.get("content", []):
            if isinstance(block, dict) and block.get("type") == "text":
                text_parts.append(str(block.get("text", "")))
        return LLMResult(text="\n".join(t for t in text_parts if t).strip(), provider="anthropic", model=self.model, raw=data)

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.settings.llm_timeout_seconds, transport=self.transport)

    def _extract_chat_completion_text(self, data: Dict[str, Any]) -> str:
        choices = data.get("choices") or []
        if not choices:
            return ""
        message = choices[0].get("message") if isinstance(choices[0], dict) else {}
        content = message.get("content", "") if isinstance(message, dict) else ""
        if isinstance(content, str):
            return content.strip()
        if isinstance(content, list):
            out = [str(part.get("text", "")) for part in content if isinstance(part, dict) and "text" in part]
            return "\n".join(t for t in out if t).strip()
        return str(content).strip()

    def _heuristic_result(self, turns: List[Dict[str, str]], response_format: str) -> LLMResult:
        if response_format == "json":
            return LLMResult(text="{}", provider="heuristic", model="heuristic-local", raw={"fallback": True})
        last_user = next((t["content"] for t in reversed(turns) if t["role"] == "user"), "")
        return LLMResult(
            text=self._heuristic_text(last_user),
            provider="heuristic",
            model="heuristic-local",
            raw={"fallback": True},
        )

    def _heuristic_text(self, text: str) -> str:
        lower = text.lower().strip()
        if re.match(r"^(hello|hi|hey)\b", lower):
            return "Hi there. What can I help you with today?"
        if lower in {"no", "nope", "not now"}:
            return "No problem. Is there anything else you want to know about the services?"
        if "what do you offer" in lower or "services" in lower:
            return "Happy to walk you through the services. Which one are you most interested in?"
        return "I can help with services, pricing, or how booking works. What would you like to know?"


def _json_object(resp: httpx.Response) -> Dict[str, Any]:
    resp.raise_for_status()
    data = resp.json()
    if not isinstance(data, dict):
        raise ValueError("provider_response_not_object")
    return data


def parse_json_object(text: str) -> Dict[str, Any]:
    """Parse the outermost JSON object in a model reply, tolerating surrounding prose."""
    first, last = text.find("{"), text.rfind("}")
    candidate = text[first : last + 1] if first != -1 and last != -1 else text
    data = json.loads(candidate)
    if not isinstance(data, dict):
        raise ValueError("json_not_object")
    return data
