import logging
from datetime import date
from typing import List, Optional, Type
from uuid import UUID

from fastapi import APIRouter, Depends, Query, WebSocket, WebSocketDisconnect

from orderledger.core.clock import day_bounds
from orderledger.core.dependencies import get_report_service
from orderledger.core.streaming import stream_snapshots
from orderledger.schemas.report import ConsumptionRow, ProfitabilityRow
from orderledger.schemas.response import SuccessResponse
from orderledger.services.report_service import ReportService
from orderledger.services.report_table import ReportTable, SortDirection

router = APIRouter()
log = logging.getLogger("orderledger.api")


def _present(rows: List, row_type: Type, sort_by: Optional[str], direction: SortDirection, q: Optional[str]) -> list:
    table = ReportTable(rows, row_type)
    table.filter(q)
    if sort_by:
        table.sort(sort_by, direction)
    return [row.model_dump(mode="json") for row in table.view()]


@router.get("/", response_model=SuccessResponse)
async def range_report_endpoint(
    restaurant_id: UUID,
    date_from: date = Query(..., description="First local day included."),
    date_to: Optional[date] = Query(None, description="Last local day included; defaults to date_from."),
    sort_by: Optional[str] = Query(None, description="Profitability column to sort by."),
    direction: SortDirection = SortDirection.ASC,
    consumption_sort_by: Optional[str] = Query(None, description="Consumption column to sort by."),
    consumption_direction: SortDirection = SortDirection.ASC,
    q: Optional[str] = Query(None, description="Case-insensitive filter on name or category."),
    include_today: bool = True,
    reports: ReportService = Depends(get_report_service),
):
    """Profitability and ingredient consumption of the paid and served orders in the range."""
    start, end = day_bounds(date_from, date_to)
    report = await reports.generate(restaurant_id, start, end, include_today=include_today)
    data = report.model_dump(mode="json")
    data["profitability"] = _present(report.profitability, ProfitabilityRow, sort_by, direction, q)
    data["consumption"] = _present(
        report.consumption, ConsumptionRow, consumption_sort_by, consumption_direction, q
    )
    return SuccessResponse(data=data)


@router.get("/today", response_model=SuccessResponse)
async def today_endpoint(restaurant_id: UUID, reports: ReportService = Depends(get_report_service)):
    """Sales since local midnight, active order count and sales by category."""
    rollup = await reports.daily_rollup(restaurant_id)
    return SuccessResponse(data=rollup.model_dump(mode="json"))


@router.websocket("/today/stream")
async def today_stream(websocket: WebSocket, restaurant_id: UUID, reports: ReportService = Depends(get_report_service)):
    """Pushes a freshly computed rollup on every order change."""
    await websocket.accept()
    try:
        await stream_snapshots(
            websocket,
            reports.watch_daily_rollup(restaurant_id),
            lambda rollup: rollup.model_dump(mode="json"),
        )
    except WebSocketDisconnect:
        pass
    log.info(f"Rollup stream for {restaurant_id} disconnected.")
