"""Human-readable HTML text for each alert kind."""

from __future__ import annotations

import math
from html import escape

from polywatch.models import BigBuy, MarketMeta, NewMarket, PriceChange, SignalCandidate, VolumeSpike

HEADERS = {
    VolumeSpike: "🔥 Volume spike",
    BigBuy: "🐳 Big move",
    PriceChange: "⚡ Price change",
    NewMarket: "🆕 New market",
}


def format_money(value: float) -> str:
    if not math.isfinite(value):
        return "0"
    return f"{value:,.0f}"


def format_pct(fraction: float, digits: int = 1) -> str:
    if not math.isfinite(fraction):
        return "0%"
    return f"{fraction * 100:.{digits}f}%"


def _price_line(label: str, prev_price: float, curr_price: float, delta: float) -> str:
    arrow = "📈" if delta > 0 else "📉"
    pp = abs(delta) * 100
    return f"{label}: {format_pct(prev_price)} -> {format_pct(curr_price)} ({arrow} {pp:.1f}pp)"


def render_alert(meta: MarketMeta, signal: SignalCandidate) -> str:
    lines = [HEADERS.get(type(signal), "Polymarket signal")]
    if meta.event_title:
        lines.append(f"Event: {escape(meta.event_title)}")
    title = escape(meta.title or signal.market_id)
    if meta.url:
        lines.append(f'Market: <a href="{escape(meta.url, quote=True)}">{title}</a>')
    else:
        lines.append(f"Market: {title}")

    if isinstance(signal, VolumeSpike):
        lines.append(
            f"💰 Volume (30m): ${format_money(signal.from_volume_usd)} -> ${format_money(signal.to_volume_usd)}"
            f" (+${format_money(signal.delta_usd)}, {format_pct(signal.pct_of_total)} of total)"
        )
        if signal.move is not None and signal.move.delta != 0:
            lines.append(
                _price_line(
                    f"Top mover {escape(signal.move.outcome_key)}",
                    signal.move.prev_price,
                    signal.move.curr_price,
                    signal.move.delta,
                )
            )
    elif isinstance(signal, BigBuy):
        lines.append(f"🎯 Outcome: {escape(signal.outcome_key)}")
        lines.append(_price_line("Price (10m)", signal.prev_price, signal.curr_price, signal.delta_price))
        lines.append(
            f"💰 Volume (10m): ${format_money(signal.from_volume_usd)} -> ${format_money(signal.to_volume_usd)}"
            f" (+${format_money(signal.volume_delta_usd)}, {format_pct(signal.pct_of_total)} of total)"
        )
    elif isinstance(signal, PriceChange):
        lines.append(f"🎯 Outcome: {escape(signal.outcome_key)}")
        lines.append(_price_line("Price (10m)", signal.prev_price, signal.curr_price, signal.delta_price))
        lines.append(f"💰 Volume (10m): +${format_money(signal.volume_delta_usd)}")
    elif isinstance(signal, NewMarket):
        lines.append(f"💰 Volume: ${format_money(signal.volume_usd)}")
        lines.append(f"💧 Liquidity: ${format_money(signal.liquidity_usd)}")
        lines.append(f"⏱ Age: {signal.age_hours:.1f}h")

    return "\n".join(lines)
