from __future__ import annotations

from datetime import date

import structlog
from fastapi import APIRouter, Depends, HTTPException, status

from app.dependencies import get_hub, get_resolver
from app.schemas import AssignmentResync
from app.services import report_events
from app.services.assignment_resolver import UNASSIGNED, AssignmentResolver
from app.services.realtime_hub import RealtimeHub

logger = structlog.get_logger(__name__)

router = APIRouter(prefix='/api/assignments', tags=['assignments'])


@router.get('/resolve')
async def resolve_assignment(
    report_date: date,
    site_name: str,
    job_id: str | None = None,
    location: str | None = None,
    resolver: AssignmentResolver = Depends(get_resolver),
):
    try:
        staff_name = await resolver.resolve(report_date, site_name, job_id=job_id, location=location)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc
    return {'staff_name': staff_name, 'assigned': staff_name != UNASSIGNED}


@router.post('/resync')
async def assignments_resynced(
    payload: AssignmentResync,
    resolver: AssignmentResolver = Depends(get_resolver),
    hub: RealtimeHub = Depends(get_hub),
):
    resolver.invalidate(payload.report_date)
    delivered = await hub.publish(report_events.sheet_synced(payload.sheet_id, payload.row_count))
    logger.info('assignments_resynced', sheet_id=payload.sheet_id, rows=payload.row_count, delivered=delivered)
    return {'invalidated': payload.report_date.isoformat() if payload.report_date else 'all'}
