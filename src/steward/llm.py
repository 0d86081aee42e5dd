from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Protocol

import httpx

from steward.tools.protocol import ToolCall, parse_tool_call


@dataclass(frozen=True)
class ModelResponse:
    content: str
    tool_calls: list[ToolCall] = field(default_factory=list)
    model: str = ""


class ModelService(Protocol):
    def call(
        self,
        *,
        messages: list[dict[str, Any]],
        temperature: float | None = None,
        available_tools: list[dict[str, Any]] | None = None,
    ) -> ModelResponse:
        ...


def _parse_tool_calls(raw_calls: Any) -> list[ToolCall]:
    if not isinstance(raw_calls, list):
        return []
    calls: list[ToolCall] = []
    for index, raw in enumerate(raw_calls):
        if isinstance(raw, dict) and not raw.get("id"):
            raw = {**raw, "id": f"call_{index}"}
        call = parse_tool_call(raw)
        if call is not None:
            calls.append(call)
    return calls


@dataclass(frozen=True)
class OpenAIChatClient:
    base_url: str
    api_key: str
    model: str
    timeout_s: float = 60.0
    default_temperature: float = 0.2
    http_client: httpx.Client = field(default_factory=httpx.Client, repr=False, compare=False)

    def call(
        self,
        *,
        messages: list[dict[str, Any]],
        temperature: float | None = None,
        available_tools: list[dict[str, Any]] | None = None,
    ) -> ModelResponse:
        url = f"{self.base_url.rstrip('/')}/chat/completions"
        headers = {"Authorization": f"Bearer {self.api_key}"}
        payload: dict[str, Any] = {
            "model": self.model,
            "messages": messages,
            "temperature": temperature if temperature is not None else self.default_temperature,
        }
        if available_tools:
            payload["tools"] = available_tools
        response = self.http_client.post(url, headers=headers, json=payload, timeout=self.timeout_s)
        response.raise_for_status()
        message = response.json()["choices"][0]["message"]
        return ModelResponse(
            content=message.get("content") or "",
            tool_calls=_parse_tool_calls(message.get("tool_calls")),
            model=self.model,
        )


@dataclass(frozen=True)
class OllamaChatClient:
    base_url: str
    model: str
    timeout_s: float = 300.0
    default_temperature: float = 0.2
    max_retries: int = 2
    retry_delay_s: float = 1.0
    http_client: httpx.Client = field(default_factory=httpx.Client, repr=False, compare=False)

    def call(
        self,
        *,
        messages: list[dict[str, Any]],
        temperature: float | None = None,
        available_tools: list[dict[str, Any]] | None = None,
    ) -> ModelResponse:
        url = f"{self.base_url.rstrip('/')}/api/chat"
        temp = temperature if temperature is not None else self.default_temperature
        payload: dict[str, Any] = {
            "model": self.model,
            "messages": messages,
            "stream": False,
            "options": {"temperature": temp},
        }
        if available_tools:
            payload["tools"] = available_tools
        attempts = max(0, self.max_retries) + 1
        for attempt in range(attempts):
            try:
                response = self.http_client.post(url, json=payload, timeout=self.timeout_s)
                response.raise_for_status()
                message = response.json()["message"]
                return ModelResponse(
                    content=message.get("content") or "",
                    tool_calls=_parse_tool_calls(message.get("tool_calls")),
                    model=self.model,
                )
            except httpx.TimeoutException:
                if attempt >= attempts - 1:
                    raise
                if self.retry_delay_s > 0:
                    time.sleep(self.retry_delay_s * (attempt + 1))
        raise RuntimeError("Ollama request failed without response")


def ask_model(
    model: ModelService, system_prompt: str, prompt: str, temperature: float | None = None
) -> str:
    """Single-shot, tool-free request used by the planning prompts."""
    messages: list[dict[str, Any]] = []
    if system_prompt:
        messages.append({"role": "system", "content": system_prompt})
    messages.append({"role": "user", "content": prompt})
    response = model.call(messages=messages, temperature=temperature, available_tools=[])
    return response.content
