from __future__ import annotations

import json
import urllib.error
import urllib.parse
import urllib.request
from dataclasses import dataclass, field
from typing import Any

from ..config import LlmConfig, ProviderConfig


class ProviderError(ValueError):
    pass


@dataclass(frozen=True)
class GenerationRequest:
    messages: list[dict[str, str]]
    max_tokens: int
    temperature: float
    system: str | None = None


@dataclass(frozen=True)
class GenerationResult:
    text: str
    model: str
    input_tokens: int = 0
    output_tokens: int = 0
    raw: dict[str, Any] = field(default_factory=dict, repr=False, compare=False)


class TextProvider:
    """A backend that turns a list of chat messages into generated text."""

    name = "provider"

    def generate(self, request: GenerationRequest) -> GenerationResult:
        raise NotImplementedError


class _HttpProvider(TextProvider):
    default_base_url = ""

    def __init__(
        self,
        name: str,
        api_key: str | None,
        model: str,
        base_url: str | None = None,
        timeout_seconds: int = 30,
    ) -> None:
        self.name = name
        self.api_key = api_key
        self.model = model
        self.base_url = base_url or self.default_base_url
        self.timeout_seconds = timeout_seconds

    def _require_key(self) -> str:
        if not self.api_key:
            raise ProviderError(f"{self.name}_missing_api_key")
        return self.api_key


class OpenAICompatibleProvider(_HttpProvider):
    default_base_url = "https://api.openai.com/v1"

    def generate(self, request: GenerationRequest) -> GenerationResult:
        api_key = self._require_key()
        messages = list(request.messages)
        if request.system:
            messages.insert(0, {"role": "system", "content": request.system})
        payload = {
            "model": self.model,
            "messages": messages,
            "max_tokens": request.max_tokens,
            "temperature": request.temperature,
        }
        headers = {"Authorization": f"Bearer {api_key}"}
        response = _http_request(
            "POST", _join_url(self.base_url, "/chat/completions"), headers, payload, self.timeout_seconds
        )
        return _read_openai(response, self.model)


class AnthropicProvider(_HttpProvider):
    default_base_url = "https://api.anthropic.com/v1"
    api_version = "2023-06-01"

    def generate(self, request: GenerationRequest) -> GenerationResult:
        api_key = self._require_key()
        payload: dict[str, Any] = {
            "model": self.model,
            "max_tokens": request.max_tokens,
            "temperature": request.temperature,
            "messages": [
                message for message in request.messages if message.get("role") != "system"
            ],
        }
        if request.system:
            payload["system"] = request.system
        headers = {"x-api-key": api_key, "anthropic-version": self.api_version}
        response = _http_request(
            "POST", _join_url(self.base_url, "/messages"), headers, payload, self.timeout_seconds
        )
        return _read_anthropic(response, self.model)


class GoogleProvider(_HttpProvider):
    default_base_url = "https://generativelanguage.googleapis.com/v1beta"

    def generate(self, request: GenerationRequest) -> GenerationResult:
        api_key = self._require_key()
        path = _join_url(
            self.base_url,
            f"/models/{urllib.parse.quote(self.model)}:generateContent",
        )
        path = _append_key(path, api_key)
        payload: dict[str, Any] = {
            "contents": [
                {
                    "role": "model" if message.get("role") == "assistant" else "user",
                    "parts": [{"text": message.get("content", "")}],
                }
                for message in request.messages
                if message.get("role") != "system"
            ],
            "generationConfig": {
                "maxOutputTokens": request.max_tokens,
                "temperature": request.temperature,
            },
        }
        if request.system:
            payload["systemInstruction"] = {"parts": [{"text": request.system}]}
        response = _http_request("POST", path, {}, payload, self.timeout_seconds)
        return _read_google(response, self.model)


_PROVIDER_CLASSES: dict[str, type[_HttpProvider]] = {
    "openai_compatible": OpenAICompatibleProvider,
    "anthropic": AnthropicProvider,
    "google": GoogleProvider,
}


def build_provider(provider: ProviderConfig, timeout_seconds: int = 30) -> TextProvider:
    cls = _PROVIDER_CLASSES.get(provider.type)
    if cls is None:
        raise ValueError("unsupported_provider_type")
    return cls(
        name=provider.name,
        api_key=provider.api_key,
        model=provider.model,
        base_url=provider.base_url or None,
        timeout_seconds=timeout_seconds,
    )


def build_providers(llm: LlmConfig) -> list[TextProvider]:
    return [build_provider(item, llm.request_timeout_seconds) for item in llm.providers]


def _http_request(
    method: str,
    url: str,
    headers: dict[str, str],
    payload: dict[str, Any] | None,
    timeout_seconds: int,
) -> dict[str, Any]:
    data = json.dumps(payload).encode("utf-8") if payload is not None else None
    request = urllib.request.Request(url, data=data, method=method)
    request.add_header("Content-Type", "application/json")
    for key, value in headers.items():
        request.add_header(key, value)
    try:
        with urllib.request.urlopen(request, timeout=timeout_seconds) as response:
            raw = response.read().decode("utf-8")
    except urllib.error.HTTPError as exc:
        raw = exc.read().decode("utf-8", errors="ignore")
        raise ProviderError(f"http_error {exc.code}: {raw[:500]}") from exc
    except urllib.error.URLError as exc:
        raise ProviderError(f"network_error: {exc}") from exc
    except TimeoutError as exc:
        raise ProviderError("network_timeout") from exc
    try:
        return json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ProviderError("invalid_json_response") from exc


def _read_openai(response: dict[str, Any], model: str) -> GenerationResult:
    choices = response.get("choices") or []
    if not choices:
        raise ProviderError("openai_missing_choices")
    text = (choices[0].get("message") or {}).get("content") or ""
    usage = response.get("usage") or {}
    return GenerationResult(
        text=text,
        model=response.get("model") or model,
        input_tokens=int(usage.get("prompt_tokens") or 0),
        output_tokens=int(usage.get("completion_tokens") or 0),
        raw=response,
    )


def _read_anthropic(response: dict[str, Any], model: str) -> GenerationResult:
    content = response.get("content") or []
    if not content:
        raise ProviderError("anthropic_missing_content")
    usage = response.get("usage") or {}
    return GenerationResult(
        text=content[0].get("text") or "",
        model=response.get("model") or model,
        input_tokens=int(usage.get("input_tokens") or 0),
        output_tokens=int(usage.get("output_tokens") or 0),
        raw=response,
    )


def _read_google(response: dict[str, Any], model: str) -> GenerationResult:
    candidates = response.get("candidates") or []
    if not candidates:
        raise ProviderError("google_missing_candidates")
    parts = candidates[0].get("content", {}).get("parts", [])
    if not parts:
        raise ProviderError("google_missing_parts")
    usage = response.get("usageMetadata") or {}
    return GenerationResult(
        text=parts[0].get("text") or "",
        model=response.get("modelVersion") or model,
        input_tokens=int(usage.get("promptTokenCount") or 0),
        output_tokens=int(usage.get("candidatesTokenCount") or 0),
        raw=response,
    )


def _append_key(url: str, api_key: str | None) -> str:
    if not api_key:
        return url
    parsed = urllib.parse.urlsplit(url)
    query = urllib.parse.parse_qsl(parsed.query, keep_blank_values=True)
    query.append(("key", api_key))
    return urllib.parse.urlunsplit(
        (parsed.scheme, parsed.netloc, parsed.path, urllib.parse.urlencode(query), parsed.fragment)
    )


def _join_url(base: str, path: str) -> str:
    return base.rstrip("/") + path
