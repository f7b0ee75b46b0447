from __future__ import annotations

from datetime import date

from fastapi import APIRouter, Depends, Query
from fastapi.encoders import jsonable_encoder

from habitlog.progress import ProgressAggregator
from habitlog.session import get_aggregator

router = APIRouter()


@router.get("/v1/progress/day/{day}")
async def day_progress(day: date, aggregator: ProgressAggregator = Depends(get_aggregator)):
    return aggregator.get_daily_progress(day).to_dict()


@router.get("/v1/progress/week")
async def week_progress(ref: date | None = Query(None), aggregator: ProgressAggregator = Depends(get_aggregator)):
    return {"items": [day.to_dict() for day in aggregator.get_week_progress(ref)]}


@router.get("/v1/progress/month")
async def month_progress(ref: date | None = Query(None), aggregator: ProgressAggregator = Depends(get_aggregator)):
    progress = aggregator.get_month_progress(ref)
    return {
        "items": [day.to_dict() for day in progress],
        "streaks": aggregator.get_streaks(progress),
    }


@router.get("/v1/progress/today")
async def today_stats(aggregator: ProgressAggregator = Depends(get_aggregator)):
    return aggregator.get_today_stats()


@router.get("/v1/progress/report")
async def monthly_report(aggregator: ProgressAggregator = Depends(get_aggregator)):
    report = aggregator.get_monthly_report()
    consistent = report["most_consistent_habit"]
    if consistent:
        consistent = {**consistent, "habit": consistent["habit"].to_dict()}
    return jsonable_encoder(
        {
            **report,
            "most_consistent_habit": consistent,
            "highest_mood_days": [entry.to_dict() for entry in report["highest_mood_days"]],
            "progress": [day.to_dict() for day in report["progress"]],
        }
    )
