"""Pydantic schemas for analytics."""

from tinylink_analytics.schemas.analytics import BreakdownItem, DailyClicks, LinkClickSummary

__all__ = ["BreakdownItem", "DailyClicks", "LinkClickSummary"]
