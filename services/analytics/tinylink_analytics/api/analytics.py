"""Analytics API endpoints."""

from typing import Annotated

import structlog
from fastapi import APIRouter, Query
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from tinylink_analytics.core.database import AsyncSessionDep
from tinylink_analytics.models.click import ClickEventRecord
from tinylink_analytics.schemas import BreakdownItem, DailyClicks, LinkClickSummary

logger = structlog.get_logger()

router = APIRouter(prefix="/analytics", tags=["analytics"])

UNKNOWN = "unknown"


async def breakdown(
    session: AsyncSession,
    link_id: int,
    column,
    total_clicks: int,
    limit: int,
    skip_empty: bool = False,
) -> list[BreakdownItem]:
    """Click counts grouped by one column, most clicked first."""
    clicks = func.count().label("clicks")
    query = (
        select(column, clicks)
        .where(ClickEventRecord.short_link_id == link_id)
        .group_by(column)
        .order_by(clicks.desc(), column)
        .limit(limit)
    )
    if skip_empty:
        query = query.where(column.isnot(None), column != "")

    result = await session.execute(query)
    return [
        BreakdownItem(
            value=value or UNKNOWN,
            clicks=count,
            percentage=round(count / total_clicks * 100, 2) if total_clicks else 0.0,
        )
        for value, count in result.all()
    ]


@router.get("/links/{link_id}/summary", response_model=LinkClickSummary)
async def get_link_summary(
    link_id: int,
    session: AsyncSessionDep,
    limit: Annotated[int, Query(ge=1, le=50, description="Max rows per breakdown")] = 10,
) -> LinkClickSummary:
    """Get click statistics for a link.

    Counts every stored event, duplicates from redelivery included.
    """
    totals_result = await session.execute(
        select(
            func.count().label("total_clicks"),
            func.count(func.distinct(ClickEventRecord.ip_address)).label("unique_visitors"),
            func.min(ClickEventRecord.occurred_at).label("first_click_at"),
            func.max(ClickEventRecord.occurred_at).label("last_click_at"),
        ).where(ClickEventRecord.short_link_id == link_id)
    )
    totals = totals_result.one()
    total_clicks = totals.total_clicks

    day = func.date(ClickEventRecord.occurred_at).label("day")
    daily_result = await session.execute(
        select(day, func.count().label("clicks"))
        .where(ClickEventRecord.short_link_id == link_id)
        .group_by(day)
        .order_by(day)
    )
    clicks_by_day = [DailyClicks(day=row.day, clicks=row.clicks) for row in daily_result.all()]

    summary = LinkClickSummary(
        link_id=link_id,
        total_clicks=total_clicks,
        unique_visitors=totals.unique_visitors,
        first_click_at=totals.first_click_at,
        last_click_at=totals.last_click_at,
        clicks_by_day=clicks_by_day,
        countries=await breakdown(session, link_id, ClickEventRecord.country, total_clicks, limit),
        devices=await breakdown(session, link_id, ClickEventRecord.device_type, total_clicks, limit),
        browsers=await breakdown(session, link_id, ClickEventRecord.browser, total_clicks, limit),
        top_referrers=await breakdown(
            session, link_id, ClickEventRecord.referrer, total_clicks, limit, skip_empty=True
        ),
    )

    logger.debug("Summary fetched", link_id=link_id, total_clicks=total_clicks)
    return summary
