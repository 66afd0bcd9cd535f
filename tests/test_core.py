"""Tests for the settle-all helper and log redaction."""

from __future__ import annotations

import asyncio

import pytest

from src.relay.core.concurrency import settle_all
from src.relay.core.logging import REDACTED, redact_secrets


class TestSettleAll:
    @pytest.mark.asyncio
    async def test_results_in_task_order(self):
        async def _value(value: int, delay: float) -> int:
            await asyncio.sleep(delay)
            return value

        results = await settle_all(
            [_value(1, 0.02), _value(2, 0), _value(3, 0.01)],
            lambda _i, _exc: -1,
        )
        assert results == [1, 2, 3]

    @pytest.mark.asyncio
    async def test_failures_converted_without_cancelling_others(self):
        finished: list[str] = []

        async def _ok(name: str) -> str:
            await asyncio.sleep(0.01)
            finished.append(name)
            return name

        async def _boom() -> str:
            raise ValueError("sink down")

        results = await settle_all(
            [_ok("a"), _boom(), _ok("c")],
            lambda index, exc: f"failed[{index}]: {exc}",
        )

        assert results == ["a", "failed[1]: sink down", "c"]
        assert sorted(finished) == ["a", "c"]

    @pytest.mark.asyncio
    async def test_empty(self):
        assert await settle_all([], lambda _i, _exc: None) == []


class TestRedactSecrets:
    def test_masks_sensitive_keys(self):
        event = redact_secrets(
            None,
            "info",
            {
                "event": "config_loaded",
                "secret": "s3cret",
                "webhook_url": "https://hooks.slack.com/services/x",
                "API_KEY": "k",
                "url": "https://hooks.example.com",
            },
        )

        assert event["secret"] == REDACTED
        assert event["webhook_url"] == REDACTED
        assert event["API_KEY"] == REDACTED
        assert event["url"] == "https://hooks.example.com"
        assert event["event"] == "config_loaded"

    def test_empty_values_left_alone(self):
        assert redact_secrets(None, "info", {"secret": None})["secret"] is None
