"""Discord webhook notifier.

Renders one embed per payload and POSTs it with aiohttp. Delivery is
attempted up to ``max_attempts`` times with a fixed pause; exhaustion
raises DeliveryFailureError, which callers log without stopping.
"""

import asyncio
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime

import aiohttp

from sentinel.config import NotifierSettings
from sentinel.exceptions import DeliveryFailureError
from sentinel.logging import get_logger
from sentinel.models import AlertDirection, AlertPayload
from sentinel.notify.base import Notifier
from sentinel.retry import RetryPolicy, call_with_retry

logger = get_logger(__name__)

_GREEN = 0x00FF00
_RED = 0xFF0000
_BLUE = 0x3498DB


def _fmt(value: float | None, decimals: int = 2) -> str:
    return f"{value:.{decimals}f}" if value is not None else "N/A"


def build_embed(payload: AlertPayload) -> dict:
    """Render a payload as a Discord embed dict."""
    base, _, quote = payload.symbol.partition("/")
    market_id = f"{base}_{quote or 'USDT'}"

    if payload.direction is None:
        title = "🐋 Whale Order Detected"
        color = _BLUE
    elif payload.direction is AlertDirection.BULLISH:
        title = "🚀 Pump Detected"
        color = _GREEN
    else:
        title = "📉 Dump Detected"
        color = _RED

    fields = [
        {"name": "Symbol", "value": f"`{payload.symbol}`", "inline": True},
        {"name": "Current Price", "value": f"${_fmt(payload.current_price, 6)}", "inline": True},
    ]
    if payload.direction is not None:
        fields += [
            {"name": "Price Change", "value": f"{_fmt(payload.price_change_pct)}%", "inline": True},
            {
                "name": "Volume Spike",
                "value": f"{_fmt(payload.volume_multiple, 1)}x",
                "inline": True,
            },
            {
                "name": "Order Book Imbalance",
                "value": f"{_fmt(payload.order_book_imbalance)}x",
                "inline": True,
            },
            {"name": "VWAP", "value": _fmt(payload.vwap, 6), "inline": True},
            {"name": "RSI (1h)", "value": _fmt(payload.rsi_1h, 1), "inline": True},
            {
                "name": "Breakout",
                "value": payload.breakout_label.value if payload.breakout_label else "N/A",
                "inline": True,
            },
            {
                "name": "Funding Rate",
                "value": f"{_fmt(payload.funding_rate * 100, 4)}%"
                if payload.funding_rate is not None
                else "N/A",
                "inline": True,
            },
        ]
    whale = payload.whale_data
    fields.append(
        {
            "name": "Whale Activity",
            "value": f"🐋 **{whale.side.value.upper()}** of {_fmt(whale.amount)} {base}"
            if whale is not None
            else "No whale activity detected",
            "inline": True,
        }
    )
    fields.append(
        {
            "name": "Charts",
            "value": f"[Binance](https://www.binance.com/en/trade/{market_id}) | "
            f"[TradingView](https://www.tradingview.com/chart/?symbol=BINANCE:{base}{quote})",
        }
    )

    return {
        "title": title,
        "fields": fields,
        "color": color,
        "timestamp": datetime.now(UTC).isoformat(),
        "footer": {"text": "crypto-sentinel"},
    }


class DiscordNotifier(Notifier):
    """Posts alert embeds to a Discord webhook."""

    def __init__(
        self,
        settings: NotifierSettings,
        session: aiohttp.ClientSession | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._url = settings.webhook_url.get_secret_value()
        self._timeout = aiohttp.ClientTimeout(total=settings.timeout_seconds)
        self._policy = RetryPolicy.any_failure(
            max_attempts=settings.max_attempts,
            pause=settings.retry_pause_seconds,
        )
        self._session = session
        self._owns_session = session is None
        self._sleep = sleep

    async def send(self, payload: AlertPayload) -> None:
        body = {"embeds": [build_embed(payload)]}
        try:
            await call_with_retry(
                lambda: self._post(body),
                self._policy,
                description="discord_webhook",
                sleep=self._sleep,
                symbol=payload.symbol,
            )
        except Exception as exc:
            raise DeliveryFailureError(
                f"Failed to send Discord alert for {payload.symbol} "
                f"after {self._policy.max_retries + 1} attempts"
            ) from exc
        logger.info("discord_alert_sent", symbol=payload.symbol)

    async def _post(self, body: dict) -> None:
        if self._session is None:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
        async with self._session.post(self._url, json=body) as response:
            response.raise_for_status()

    async def close(self) -> None:
        if self._owns_session and self._session is not None:
            await self._session.close()
            self._session = None
