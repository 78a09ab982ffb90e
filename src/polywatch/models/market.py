"""Market, Outcome - canonical entities rebuilt from the catalog every cycle."""

from __future__ import annotations

from pydantic import BaseModel, Field


class Outcome(BaseModel):
    """Single outcome (e.g. Yes/No) in a market."""

    name: str = Field(..., min_length=1)
    price: float = Field(..., gt=0, le=1, description="Probability/price in (0, 1]")


class Market(BaseModel):
    """Canonical market, ephemeral per cycle."""

    market_id: str  # primary id, else slug
    slug: str = ""
    title: str = ""
    event_title: str = ""
    url: str = ""
    end_date: str = ""
    created_at: int | None = None  # ms epoch, None when unknown
    liquidity_usd: float = 0.0
    volume_usd: float = 0.0  # cumulative
    outcomes: list[Outcome] = Field(default_factory=list)
