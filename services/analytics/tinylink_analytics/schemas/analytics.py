"""Analytics Pydantic schemas."""

from datetime import date, datetime

from pydantic import BaseModel, Field


class DailyClicks(BaseModel):
    """Clicks on one calendar day (UTC)."""

    day: date
    clicks: int


class BreakdownItem(BaseModel):
    """Click count for one value of a dimension (country, device, ...)."""

    value: str
    clicks: int
    percentage: float = Field(description="Share of total clicks, 0-100")


class LinkClickSummary(BaseModel):
    """Click statistics for a single short link."""

    link_id: int
    total_clicks: int
    unique_visitors: int = Field(description="Distinct client IP addresses")
    first_click_at: datetime | None = None
    last_click_at: datetime | None = None
    clicks_by_day: list[DailyClicks]
    countries: list[BreakdownItem]
    devices: list[BreakdownItem]
    browsers: list[BreakdownItem]
    top_referrers: list[BreakdownItem]
