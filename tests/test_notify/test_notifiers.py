"""Tests for the Discord webhook notifier, embed rendering and notifier selection."""

from unittest.mock import AsyncMock, MagicMock

import aiohttp
import pytest

from sentinel.config import NotifierSettings
from sentinel.exceptions import DeliveryFailureError
from sentinel.models import AlertDirection, AlertPayload, BreakoutLabel, TradeSide, WhaleTransaction
from sentinel.notify import DiscordNotifier, LogNotifier, build_embed, create_notifier

WEBHOOK = "https://discord.test/api/webhooks/1/token"


def _alert(direction: AlertDirection = AlertDirection.BULLISH) -> AlertPayload:
    return AlertPayload(
        symbol="PEPE/USDT",
        current_price=0.0000123,
        direction=direction,
        price_change_pct=7.25,
        volume_multiple=6.0,
        order_book_imbalance=2.5,
        vwap=0.0000119,
        funding_rate=0.0001,
        rsi_1h=58.0,
        breakout_label=BreakoutLabel.BULLISH,
        whale_data=WhaleTransaction("PEPE/USDT", TradeSide.BUY, 5e9),
    )


def _session(raise_for_status: MagicMock) -> MagicMock:
    response = MagicMock()
    response.raise_for_status = raise_for_status
    context = MagicMock()
    context.__aenter__ = AsyncMock(return_value=response)
    context.__aexit__ = AsyncMock(return_value=False)
    session = MagicMock()
    session.post = MagicMock(return_value=context)
    session.close = AsyncMock()
    return session


class TestBuildEmbed:
    def test_pump_embed(self) -> None:
        embed = build_embed(_alert())
        fields = {f["name"]: f["value"] for f in embed["fields"]}

        assert embed["title"] == "🚀 Pump Detected"
        assert fields["Price Change"] == "7.25%"
        assert fields["Breakout"] == "Bullish Breakout"
        assert "BUY" in fields["Whale Activity"]
        assert "PEPE_USDT" in fields["Charts"]

    def test_dump_embed(self) -> None:
        assert build_embed(_alert(AlertDirection.BEARISH))["title"] == "📉 Dump Detected"

    def test_whale_only_embed(self) -> None:
        payload = AlertPayload(
            symbol="ETH/USDT",
            current_price=2000.0,
            whale_data=WhaleTransaction("ETH/USDT", TradeSide.SELL, 40.0),
        )

        embed = build_embed(payload)
        names = [f["name"] for f in embed["fields"]]

        assert embed["title"] == "🐋 Whale Order Detected"
        assert "Price Change" not in names
        assert "Whale Activity" in names


class TestDiscordNotifier:
    @pytest.mark.asyncio()
    async def test_send_posts_one_embed(self) -> None:
        session = _session(MagicMock())
        notifier = DiscordNotifier(
            NotifierSettings(webhook_url=WEBHOOK), session=session, sleep=AsyncMock()
        )

        await notifier.send(_alert())

        session.post.assert_called_once()
        assert session.post.call_args.args[0] == WEBHOOK
        body = session.post.call_args.kwargs["json"]
        assert len(body["embeds"]) == 1

    @pytest.mark.asyncio()
    async def test_three_failures_raise_delivery_failure(self) -> None:
        session = _session(MagicMock(side_effect=aiohttp.ClientError("500")))
        sleep = AsyncMock()
        notifier = DiscordNotifier(NotifierSettings(webhook_url=WEBHOOK), session=session, sleep=sleep)

        with pytest.raises(DeliveryFailureError):
            await notifier.send(_alert())

        assert session.post.call_count == 3
        assert [c.args[0] for c in sleep.await_args_list] == [2.0, 2.0]

    @pytest.mark.asyncio()
    async def test_recovers_on_second_attempt(self) -> None:
        session = _session(MagicMock(side_effect=[aiohttp.ClientError("502"), None]))
        notifier = DiscordNotifier(
            NotifierSettings(webhook_url=WEBHOOK), session=session, sleep=AsyncMock()
        )

        await notifier.send(_alert())

        assert session.post.call_count == 2

    @pytest.mark.asyncio()
    async def test_close_leaves_injected_session_open(self) -> None:
        session = _session(MagicMock())
        notifier = DiscordNotifier(NotifierSettings(webhook_url=WEBHOOK), session=session)

        await notifier.close()

        session.close.assert_not_awaited()


class TestCreateNotifier:
    def test_webhook_selects_discord(self) -> None:
        assert isinstance(create_notifier(NotifierSettings(webhook_url=WEBHOOK)), DiscordNotifier)

    def test_no_webhook_selects_log(self) -> None:
        assert isinstance(create_notifier(NotifierSettings(webhook_url="")), LogNotifier)

    @pytest.mark.asyncio()
    async def test_log_notifier_send(self) -> None:
        await LogNotifier().send(_alert())
