from __future__ import annotations

import asyncio

import pytest

from blob.core.errors import MalformedGenerationResult, ReasoningUnavailable, ValidationError
from blob.services.reasoning import ReasoningClient, expect_object, extract_json, parse_json_payload
from blob.services.retry_policy import RetryPolicy


def test_parse_json_payload_accepts_strict_json() -> None:
    assert parse_json_payload('{"goals": []}') == {"goals": []}


def test_parse_json_payload_recovers_fenced_block() -> None:
    text = 'Here is the plan:\n```json\n{"blocks": [{"kind": "task"}]}\n```\nEnjoy!'

    assert parse_json_payload(text) == {"blocks": [{"kind": "task"}]}


def test_extract_json_falls_back_to_outer_brackets() -> None:
    assert extract_json('Sure! {"a": 1, "b": {"c": 2}} hope that helps') == {"a": 1, "b": {"c": 2}}
    assert extract_json("no json here") is None


def test_parse_json_payload_raises_malformed_for_prose() -> None:
    with pytest.raises(MalformedGenerationResult):
        parse_json_payload("I could not come up with a plan today.")


def test_expect_object_rejects_lists() -> None:
    with pytest.raises(MalformedGenerationResult):
        expect_object([1, 2], "schedule")


def test_malformed_is_fallback_eligible_but_validation_is_not() -> None:
    assert RetryPolicy.is_fallback_eligible(MalformedGenerationResult("bad"))
    assert RetryPolicy.is_fallback_eligible(ReasoningUnavailable("down"))
    assert not RetryPolicy.is_fallback_eligible(ValidationError("nope"))


@pytest.mark.asyncio
async def test_unconfigured_client_raises_unavailable() -> None:
    client = ReasoningClient(api_key=None)

    assert client.is_available() is False
    with pytest.raises(ReasoningUnavailable):
        await client.complete_json([{"role": "user", "content": "hi"}])


@pytest.mark.asyncio
async def test_run_with_fallback_uses_fallback_on_unavailable() -> None:
    policy = RetryPolicy(max_attempts=1, backoff_min_seconds=0, backoff_max_seconds=0)

    async def operation():
        raise ReasoningUnavailable("down")

    result, used_fallback = await policy.run_with_fallback(operation, lambda: "fallback", label="test")

    assert result == "fallback"
    assert used_fallback is True


@pytest.mark.asyncio
async def test_run_with_fallback_propagates_other_errors() -> None:
    policy = RetryPolicy(max_attempts=1)

    async def operation():
        raise ValidationError("bad input")

    with pytest.raises(ValidationError):
        await policy.run_with_fallback(operation, lambda: "fallback", label="test")


@pytest.mark.asyncio
async def test_retrying_retries_transient_errors_then_succeeds() -> None:
    policy = RetryPolicy(max_attempts=3, backoff_min_seconds=0, backoff_max_seconds=0)
    attempts = []

    async def flaky():
        attempts.append(1)
        if len(attempts) < 3:
            raise asyncio.TimeoutError()
        return "ok"

    result = None
    async for attempt in policy.retrying():
        with attempt:
            result = await flaky()

    assert result == "ok"
    assert len(attempts) == 3
