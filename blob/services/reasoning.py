"""Async client for the external reasoning (chat completion) service."""
from __future__ import annotations

import asyncio
import json
import logging
import re
from typing import Any, Dict, List, Optional

import openai

from blob.core.config import Settings
from blob.core.errors import MalformedGenerationResult, ReasoningUnavailable
from blob.observability.metrics import timed
from blob.observability.tracing import trace
from blob.services.retry_policy import RetryPolicy

logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"```(?:json)?\s*\n?(.*?)\n?\s*```", re.DOTALL)


class ReasoningClient:
    """Thin wrapper over ``openai.AsyncOpenAI`` that always returns parsed JSON.

    Every call is bounded by ``timeout_seconds`` and retried by the shared
    ``RetryPolicy``. Transport failures surface as ``ReasoningUnavailable`` and
    unparsable payloads as ``MalformedGenerationResult``.
    """

    def __init__(
        self,
        *,
        api_key: Optional[str],
        model: str = "gpt-4o",
        timeout_seconds: float = 30.0,
        retry_policy: Optional[RetryPolicy] = None,
        client: Optional[openai.AsyncOpenAI] = None,
    ) -> None:
        self._api_key = api_key
        self.model = model
        self.timeout_seconds = timeout_seconds
        self.retry_policy = retry_policy or RetryPolicy()
        self._client = client

    @classmethod
    def from_settings(cls, settings: Settings) -> "ReasoningClient":
        return cls(
            api_key=settings.openai_api_key,
            model=settings.openai_model,
            timeout_seconds=settings.reasoning_timeout_seconds,
            retry_policy=RetryPolicy.from_settings(settings),
        )

    def is_available(self) -> bool:
        return bool(self._api_key) or self._client is not None

    def _get_client(self) -> openai.AsyncOpenAI:
        if self._client is None:
            # Retries are owned by RetryPolicy.
            self._client = openai.AsyncOpenAI(api_key=self._api_key, max_retries=0)
        return self._client

    async def complete_json(
        self,
        messages: List[Dict[str, str]],
        *,
        tool: Optional[Dict[str, Any]] = None,
        temperature: float = 0.4,
        name: str = "reasoning.complete",
    ) -> Any:
        """Send role-tagged messages and return the decoded JSON payload.

        With ``tool`` the model is forced to call that function and its
        arguments are decoded; otherwise a JSON object response is requested.
        """
        if not self.is_available():
            raise ReasoningUnavailable("Reasoning service is not configured (OPENAI_API_KEY missing).")

        metadata = {"model": self.model, "tool": tool["name"] if tool else None}
        with trace(name, metadata=metadata), timed(name, metadata) as extra:
            try:
                async for attempt in self.retry_policy.retrying():
                    with attempt:
                        raw = await asyncio.wait_for(
                            self._request(messages, tool, temperature),
                            timeout=self.timeout_seconds,
                        )
            except asyncio.TimeoutError as exc:
                extra["outcome"] = "timeout"
                raise ReasoningUnavailable(
                    f"Reasoning service timed out after {self.timeout_seconds:.0f}s."
                ) from exc
            except openai.OpenAIError as exc:
                extra["outcome"] = "error"
                raise ReasoningUnavailable(f"Reasoning service request failed: {exc}") from exc
            extra["outcome"] = "ok"

        return parse_json_payload(raw)

    async def _request(
        self,
        messages: List[Dict[str, str]],
        tool: Optional[Dict[str, Any]],
        temperature: float,
    ) -> str:
        kwargs: Dict[str, Any] = {
            "model": self.model,
            "messages": messages,
            "temperature": temperature,
        }
        if tool:
            kwargs["tools"] = [{"type": "function", "function": tool}]
            kwargs["tool_choice"] = {"type": "function", "function": {"name": tool["name"]}}
        else:
            kwargs["response_format"] = {"type": "json_object"}

        completion = await self._get_client().chat.completions.create(**kwargs)
        message = completion.choices[0].message
        if message.tool_calls:
            return message.tool_calls[0].function.arguments or ""
        return message.content or ""


def parse_json_payload(text: str) -> Any:
    """Decode ``text`` strictly, then once more leniently, before giving up."""
    try:
        return json.loads(text)
    except (TypeError, ValueError):
        pass

    extracted = extract_json(text)
    if extracted is None:
        logger.warning("Unparsable reasoning payload (%d chars)", len(text or ""))
        raise MalformedGenerationResult("Reasoning service returned a payload that is not valid JSON.")
    return extracted


def extract_json(text: str) -> Any:
    """Pull a JSON value out of prose: fenced block first, then outermost brackets."""
    if not text:
        return None

    match = _FENCE_RE.search(text)
    if match:
        try:
            return json.loads(match.group(1).strip())
        except ValueError:
            pass

    for opener, closer in (("{", "}"), ("[", "]")):
        start = text.find(opener)
        end = text.rfind(closer)
        if start != -1 and end > start:
            try:
                return json.loads(text[start : end + 1])
            except ValueError:
                continue
    return None


def expect_object(payload: Any, what: str) -> Dict[str, Any]:
    if not isinstance(payload, dict):
        raise MalformedGenerationResult(f"Expected a JSON object for {what}, got {type(payload).__name__}.")
    return payload
