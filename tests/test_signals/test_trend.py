"""Tests for trend and breakout classification.

Covers the pure classifiers and TrendClassifier's gathering of indicator
inputs across timeframes.
"""

from unittest.mock import AsyncMock

import pytest

from sentinel.config import AlertSettings
from sentinel.exceptions import InsufficientDataError
from sentinel.models import BreakoutLabel, TimeFrame, TrendLabel
from sentinel.signals import TrendClassifier, classify_breakout, classify_trend

SYMBOL = "SOL/USDT"


class TestClassifyTrend:
    """Tests for classify_trend."""

    def test_bullish(self, alert_settings: AlertSettings) -> None:
        label = classify_trend(65, 101.0, 100.0, 5000.0, 0.0005, alert_settings)
        assert label is TrendLabel.BULLISH

    def test_bullish_overheated(self, alert_settings: AlertSettings) -> None:
        label = classify_trend(65, 101.0, 100.0, 5000.0, 0.002, alert_settings)
        assert label is TrendLabel.BULLISH_OVERHEATED
        assert label.value == "Bullish (Overheated)"

    def test_bearish(self, alert_settings: AlertSettings) -> None:
        label = classify_trend(35, 99.0, 100.0, -5000.0, -0.0005, alert_settings)
        assert label is TrendLabel.BEARISH

    def test_bearish_overheated(self, alert_settings: AlertSettings) -> None:
        label = classify_trend(35, 99.0, 100.0, -5000.0, -0.002, alert_settings)
        assert label is TrendLabel.BEARISH_OVERHEATED

    def test_positive_funding_does_not_overheat_bearish(self, alert_settings: AlertSettings) -> None:
        label = classify_trend(35, 99.0, 100.0, -5000.0, 0.002, alert_settings)
        assert label is TrendLabel.BEARISH

    @pytest.mark.parametrize(
        ("rsi", "ema_fast", "ema_slow", "obv"),
        [
            (50, 101.0, 100.0, 5000.0),  # RSI in the neutral band
            (65, 99.0, 100.0, 5000.0),  # EMAs disagree
            (65, 101.0, 100.0, -5000.0),  # OBV disagrees
            (60, 101.0, 100.0, 5000.0),  # band edge is exclusive
        ],
    )
    def test_neutral_when_any_condition_fails(
        self,
        alert_settings: AlertSettings,
        rsi: float,
        ema_fast: float,
        ema_slow: float,
        obv: float,
    ) -> None:
        assert classify_trend(rsi, ema_fast, ema_slow, obv, 0.0, alert_settings) is TrendLabel.NEUTRAL


class TestClassifyBreakout:
    """Examples are newest first: latest, then the two prior prices."""

    def test_bullish_breakout(self) -> None:
        assert classify_breakout([102.0, 100.0, 101.0], 3) is BreakoutLabel.BULLISH

    def test_bearish_breakout(self) -> None:
        assert classify_breakout([98.0, 100.0, 101.0], 3) is BreakoutLabel.BEARISH

    def test_flat_is_no_breakout(self) -> None:
        label = classify_breakout([100.0, 100.0, 100.0], 3)
        assert label is BreakoutLabel.NONE
        assert label.value == "No Breakout"

    def test_inside_range_is_no_breakout(self) -> None:
        assert classify_breakout([100.5, 100.0, 101.0], 3) is BreakoutLabel.NONE

    def test_insufficient_prices_raises(self) -> None:
        with pytest.raises(InsufficientDataError):
            classify_breakout([100.0, 100.0], 3)


def _indicators(rsi_by_timeframe: dict[TimeFrame, float], funding_rate: float = 0.0) -> AsyncMock:
    indicators = AsyncMock()
    indicators.rsi = AsyncMock(side_effect=lambda symbol, tf, period: rsi_by_timeframe[tf])
    indicators.ema = AsyncMock(side_effect=lambda symbol, tf, period: {9: 101.0, 12: 100.0}[period])
    indicators.obv = AsyncMock(return_value=5000.0)
    indicators.funding_rate = AsyncMock(return_value=funding_rate)
    return indicators


class TestTrendClassifier:
    """Tests for TrendClassifier against mocked indicators."""

    @pytest.mark.asyncio()
    async def test_detect_trend_reads_ema_and_obv_on_4h(self, alert_settings: AlertSettings) -> None:
        indicators = _indicators({TimeFrame.H1: 65.0})
        classifier = TrendClassifier(indicators, AsyncMock(), alert_settings)

        assert await classifier.detect_trend(SYMBOL) is TrendLabel.BULLISH
        indicators.rsi.assert_awaited_once_with(SYMBOL, TimeFrame.H1, 14)
        assert {c.args[1] for c in indicators.ema.await_args_list} == {TimeFrame.H4}
        indicators.obv.assert_awaited_once_with(SYMBOL, TimeFrame.H4)

    @pytest.mark.asyncio()
    async def test_detect_trend_overheated(self, alert_settings: AlertSettings) -> None:
        classifier = TrendClassifier(
            _indicators({TimeFrame.H1: 65.0}, funding_rate=0.002), AsyncMock(), alert_settings
        )

        assert await classifier.detect_trend(SYMBOL) is TrendLabel.BULLISH_OVERHEATED

    @pytest.mark.asyncio()
    async def test_detect_trend_propagates_insufficient_data(
        self, alert_settings: AlertSettings
    ) -> None:
        indicators = _indicators({TimeFrame.H1: 65.0})
        indicators.obv.side_effect = InsufficientDataError("no 4h data")
        classifier = TrendClassifier(indicators, AsyncMock(), alert_settings)

        with pytest.raises(InsufficientDataError):
            await classifier.detect_trend(SYMBOL)

    @pytest.mark.asyncio()
    async def test_detect_breakout_reads_1h_prices(self, alert_settings: AlertSettings) -> None:
        store = AsyncMock()
        store.get_recent_prices = AsyncMock(return_value=[102.0, 100.0, 101.0])
        classifier = TrendClassifier(AsyncMock(), store, alert_settings)

        assert await classifier.detect_breakout(SYMBOL) is BreakoutLabel.BULLISH
        store.get_recent_prices.assert_awaited_once_with(SYMBOL, TimeFrame.H1, 3)

    @pytest.mark.asyncio()
    @pytest.mark.parametrize(
        ("rsi_5m", "rsi_1h", "rsi_4h", "expected"),
        [
            (65.0, 65.0, 50.0, "Confirmed Bullish"),
            (65.0, 50.0, 50.0, "No Confirmation"),
            (50.0, 65.0, 65.0, "No Confirmation"),
        ],
    )
    async def test_confirm_multi_timeframe(
        self,
        alert_settings: AlertSettings,
        rsi_5m: float,
        rsi_1h: float,
        rsi_4h: float,
        expected: str,
    ) -> None:
        indicators = _indicators(
            {TimeFrame.M5: rsi_5m, TimeFrame.H1: rsi_1h, TimeFrame.H4: rsi_4h}
        )
        classifier = TrendClassifier(indicators, AsyncMock(), alert_settings)

        assert await classifier.confirm_multi_timeframe(SYMBOL) == expected

    @pytest.mark.asyncio()
    async def test_confirm_multi_timeframe_bearish(self, alert_settings: AlertSettings) -> None:
        indicators = _indicators({TimeFrame.M5: 30.0, TimeFrame.H1: 50.0, TimeFrame.H4: 30.0})
        indicators.ema.side_effect = lambda symbol, tf, period: {9: 99.0, 12: 100.0}[period]
        indicators.obv.return_value = -5000.0
        classifier = TrendClassifier(indicators, AsyncMock(), alert_settings)

        assert await classifier.confirm_multi_timeframe(SYMBOL) == "Confirmed Bearish"
