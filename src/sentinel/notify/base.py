"""Notifier interface and the log-only fallback."""

from abc import ABC, abstractmethod

from sentinel.logging import get_logger
from sentinel.models import AlertPayload

logger = get_logger(__name__)


class Notifier(ABC):
    """Delivers alert payloads to a notification channel."""

    @abstractmethod
    async def send(self, payload: AlertPayload) -> None:
        """Deliver one payload.

        Raises:
            DeliveryFailureError: delivery failed after all attempts.
        """
        ...

    async def close(self) -> None:
        """Release transport resources. No-op by default."""


class LogNotifier(Notifier):
    """Writes alerts to the structured log. Used when no webhook is configured."""

    async def send(self, payload: AlertPayload) -> None:
        logger.info(
            "alert",
            symbol=payload.symbol,
            direction=payload.direction.value if payload.direction else None,
            price=payload.current_price,
            price_change_pct=payload.price_change_pct,
            volume_multiple=payload.volume_multiple,
            imbalance=payload.order_book_imbalance,
            vwap=payload.vwap,
            funding_rate=payload.funding_rate,
            rsi_1h=payload.rsi_1h,
            breakout=payload.breakout_label.value if payload.breakout_label else None,
            whale_side=payload.whale_data.side.value if payload.whale_data else None,
            whale_amount=payload.whale_data.amount if payload.whale_data else None,
        )
