from fastapi import APIRouter, Request

from server.models.requests import CreateScheduleRequest, SweepRequest
from server.models.responses import SweepResponse
from shared.models.engagement import ScheduledUpdate

router = APIRouter(tags=["schedules"])


@router.post("/schedules", status_code=201)
async def create_schedule(request: Request, body: CreateScheduleRequest) -> ScheduledUpdate:
    """Store a recurring progress update schedule with its first next_scheduled_at."""
    schedule = ScheduledUpdate(**body.model_dump())
    return await request.app.state.progress_service.save_schedule(schedule)


@router.post("/schedules/{schedule_id}/sent")
async def record_schedule_sent(request: Request, schedule_id: str) -> ScheduledUpdate:
    """Record a manual send and advance the schedule."""
    return await request.app.state.progress_service.record_sent(schedule_id)


@router.post("/sweep")
async def trigger_sweep(request: Request, body: SweepRequest | None = None) -> SweepResponse:
    """Run one engagement sweep now.

    Returns:
        SweepResponse: status "skipped" if a sweep was already running.
    """
    sweep_service = request.app.state.sweep_service
    report = await sweep_service.do_sweep(now=body.now if body else None)
    if report is None:
        return SweepResponse(status="skipped")
    return SweepResponse(status="completed", report=report)
