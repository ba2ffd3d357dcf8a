"""OpenAI-compatible model client with per-task call profiles."""
from __future__ import annotations

import json
import time
from dataclasses import dataclass, field
from typing import Any, AsyncIterator

from app.config import settings
from app.services import logger as log_service


@dataclass
class Usage:
    input_tokens: int = 0
    output_tokens: int = 0


@dataclass
class ToolCall:
    id: str
    name: str
    arguments: dict[str, Any] = field(default_factory=dict)


@dataclass
class MessageResponse:
    text: str
    tool_calls: list[ToolCall] = field(default_factory=list)
    usage: Usage = field(default_factory=Usage)

    def to_message(self) -> dict[str, Any]:
        """Assistant message echoing the tool calls back to the model."""
        message: dict[str, Any] = {"role": "assistant", "content": self.text or None}
        if self.tool_calls:
            message["tool_calls"] = [
                {
                    "id": call.id,
                    "type": "function",
                    "function": {"name": call.name, "arguments": json.dumps(call.arguments)},
                }
                for call in self.tool_calls
            ]
        return message


@dataclass(frozen=True)
class ModelProfile:
    name: str
    temperature: float
    timeout: float
    max_tokens: int | None = None


def build_profiles() -> dict[str, ModelProfile]:
    return {
        "answer": ModelProfile(
            name="answer",
            temperature=settings.answer_temperature,
            timeout=settings.answer_timeout_seconds,
            max_tokens=settings.answer_max_tokens,
        ),
        "classifier": ModelProfile(
            name="classifier",
            temperature=0,
            timeout=settings.classifier_timeout_seconds,
            max_tokens=settings.classifier_max_tokens,
        ),
        "rewrite": ModelProfile(
            name="rewrite",
            temperature=0,
            timeout=settings.rewrite_timeout_seconds,
            max_tokens=settings.rewrite_max_tokens,
        ),
        "tool": ModelProfile(
            name="tool",
            temperature=settings.answer_temperature,
            timeout=settings.tool_timeout_seconds,
        ),
    }


class ChatStream:
    def __init__(self, stream_coro: Any, *, model: str, caller: str):
        self._stream_coro = stream_coro
        self._stream: Any | None = None
        self._usage = Usage()
        self._model = model
        self._caller = caller
        self._started_at = 0.0

    async def __aenter__(self) -> "ChatStream":
        self._started_at = time.monotonic()
        try:
            self._stream = await self._stream_coro
        except Exception as e:
            self._log(status="error", error=str(e))
            raise
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if self._stream is not None:
            await self._stream.close()
        self._log(
            status="error" if exc_type else "success",
            error=str(exc) if exc else None,
        )

    def _log(self, *, status: str, error: str | None = None) -> None:
        log_service.log_llm_call(
            model=self._model,
            caller=self._caller,
            input_tokens=self._usage.input_tokens,
            output_tokens=self._usage.output_tokens,
            duration_ms=int((time.monotonic() - self._started_at) * 1000),
            status=status,
            error=error,
        )

    async def _iter_text(self) -> AsyncIterator[str]:
        if self._stream is None:
            return
        async for chunk in self._stream:
            choices = getattr(chunk, "choices", None) or []
            usage = getattr(chunk, "usage", None)
            if usage:
                self._usage = Usage(
                    input_tokens=getattr(usage, "prompt_tokens", 0) or 0,
                    output_tokens=getattr(usage, "completion_tokens", 0) or 0,
                )

            if not choices:
                continue
            delta = getattr(choices[0], "delta", None)
            if not delta:
                continue
            text = getattr(delta, "content", None)
            if text:
                yield text

    @property
    def text_stream(self) -> AsyncIterator[str]:
        return self._iter_text()

    @property
    def usage(self) -> Usage:
        return self._usage


class ModelClient:
    """Thin wrapper over ``AsyncOpenAI`` chat completions.

    Messages are OpenAI chat dicts. Tools use the ``{"name", "description",
    "input_schema"}`` shape and are converted to function tools here.
    """

    def __init__(self, openai_client: Any, *, model: str, profiles: dict[str, ModelProfile] | None = None):
        self._client = openai_client
        self.model = model
        self.profiles = profiles or build_profiles()

    def _profile(self, name: str) -> ModelProfile:
        try:
            return self.profiles[name]
        except KeyError:
            raise ValueError(f"Unknown model profile: {name}") from None

    def _request_kwargs(self, profile: ModelProfile, messages: list[dict[str, Any]]) -> dict[str, Any]:
        kwargs: dict[str, Any] = {
            "model": self.model,
            "messages": messages,
            "temperature": profile.temperature,
            "timeout": profile.timeout,
        }
        if profile.max_tokens:
            kwargs["max_tokens"] = profile.max_tokens
        return kwargs

    @staticmethod
    def _to_openai_tools(tools: list[dict[str, Any]]) -> list[dict[str, Any]]:
        return [
            {
                "type": "function",
                "function": {
                    "name": t["name"],
                    "description": t.get("description", ""),
                    "parameters": t.get("input_schema", {"type": "object", "properties": {}}),
                },
            }
            for t in tools
        ]

    @staticmethod
    def _from_openai_response(response: Any) -> MessageResponse:
        choice = response.choices[0].message

        tool_calls: list[ToolCall] = []
        for tc in getattr(choice, "tool_calls", None) or []:
            args = getattr(tc.function, "arguments", "{}") or "{}"
            try:
                parsed_args = json.loads(args)
            except json.JSONDecodeError:
                parsed_args = {}
            if not isinstance(parsed_args, dict):
                parsed_args = {}
            tool_calls.append(ToolCall(id=tc.id, name=tc.function.name, arguments=parsed_args))

        usage = getattr(response, "usage", None)
        mapped_usage = Usage(
            input_tokens=getattr(usage, "prompt_tokens", 0) or 0,
            output_tokens=getattr(usage, "completion_tokens", 0) or 0,
        )
        return MessageResponse(
            text=getattr(choice, "content", None) or "",
            tool_calls=tool_calls,
            usage=mapped_usage,
        )

    async def _create(self, caller: str, **kwargs: Any) -> MessageResponse:
        t0 = time.monotonic()
        try:
            response = await self._client.chat.completions.create(**kwargs)
        except Exception as e:
            log_service.log_llm_call(
                model=self.model,
                caller=caller,
                duration_ms=int((time.monotonic() - t0) * 1000),
                status="error",
                error=str(e),
            )
            raise

        mapped = self._from_openai_response(response)
        log_service.log_llm_call(
            model=self.model,
            caller=caller,
            input_tokens=mapped.usage.input_tokens,
            output_tokens=mapped.usage.output_tokens,
            duration_ms=int((time.monotonic() - t0) * 1000),
        )
        return mapped

    async def complete(self, messages: list[dict[str, Any]], *, profile: str) -> str:
        """Non-streaming completion returning the message text."""
        kwargs = self._request_kwargs(self._profile(profile), messages)
        response = await self._create(profile, **kwargs)
        return response.text

    async def complete_with_tools(
        self,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]],
        *,
        profile: str = "tool",
    ) -> MessageResponse:
        kwargs = self._request_kwargs(self._profile(profile), messages)
        if tools:
            kwargs["tools"] = self._to_openai_tools(tools)
            kwargs["tool_choice"] = "auto"
        return await self._create(profile, **kwargs)

    def stream(self, messages: list[dict[str, Any]], *, profile: str = "answer") -> ChatStream:
        kwargs = self._request_kwargs(self._profile(profile), messages)
        stream = self._client.chat.completions.create(
            **kwargs,
            stream=True,
            stream_options={"include_usage": True},
        )
        return ChatStream(stream, model=self.model, caller=profile)


def get_client() -> ModelClient:
    """Build the model client against the configured OpenAI-compatible backend."""
    from openai import AsyncOpenAI

    openai_client = AsyncOpenAI(
        api_key=settings.llm_api_key or "not-needed",
        base_url=settings.llama_api_url,
    )
    return ModelClient(openai_client, model=settings.llm_model)
