"""Tests for logging setup and per-symbol context binding."""

import asyncio
import logging

import pytest
import structlog

from sentinel.logging import setup_logging, symbol_context


class TestSymbolContext:
    def test_binds_and_unbinds(self) -> None:
        with symbol_context("BTC/USDT"):
            assert structlog.contextvars.get_contextvars()["symbol"] == "BTC/USDT"
        assert "symbol" not in structlog.contextvars.get_contextvars()

    @pytest.mark.asyncio()
    async def test_bindings_do_not_leak_between_tasks(self) -> None:
        seen: dict[str, str] = {}

        async def work(symbol: str) -> None:
            with symbol_context(symbol):
                await asyncio.sleep(0)
                seen[symbol] = structlog.contextvars.get_contextvars()["symbol"]

        await asyncio.gather(work("BTC/USDT"), work("ETH/USDT"))

        assert seen == {"BTC/USDT": "BTC/USDT", "ETH/USDT": "ETH/USDT"}


class TestSetupLogging:
    def test_quiets_third_party_loggers(self) -> None:
        setup_logging("DEBUG", "json")

        assert logging.getLogger().level == logging.DEBUG
        assert logging.getLogger("ccxt").level == logging.WARNING
