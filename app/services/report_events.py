from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.errors import StoreError
from app.models import ReportStatus, Role

if TYPE_CHECKING:
    from app.services.realtime_hub import RealtimeHub

logger = structlog.get_logger(__name__)

OUTBOX_KEY = 'pending_report_events'

REPORT_CREATED = 'report:created'
REPORT_UPDATED = 'report:updated'
REPORT_STATUS_CHANGED = 'report:statusChanged'
REPORT_STAFF_UPDATED = 'report:staffUpdated'
SHEET_SYNCED = 'sheet:synced'


@dataclass(frozen=True)
class ReportEvent:
    name: str
    payload: dict
    report_id: int | None = None
    roles: tuple[str, ...] = ()
    broadcast: bool = False


def report_created(report_id: int) -> ReportEvent:
    return ReportEvent(
        name=REPORT_CREATED,
        payload={'report_id': report_id},
        roles=(Role.CHIEF.value,),
        broadcast=True,
    )


def report_updated(report_id: int) -> ReportEvent:
    return ReportEvent(name=REPORT_UPDATED, payload={'report_id': report_id}, report_id=report_id)


def status_changed(report_id: int, status: ReportStatus) -> ReportEvent:
    # Every status change reaches sales and accounting; their clients filter by their own list queries.
    return ReportEvent(
        name=REPORT_STATUS_CHANGED,
        payload={'report_id': report_id, 'status': status.value},
        report_id=report_id,
        roles=(Role.SALES.value, Role.ACCOUNTING.value),
    )


def staff_updated(report_id: int) -> ReportEvent:
    return ReportEvent(name=REPORT_STAFF_UPDATED, payload={'report_id': report_id}, report_id=report_id)


def sheet_synced(sheet_id: int | str, count: int) -> ReportEvent:
    return ReportEvent(name=SHEET_SYNCED, payload={'sheet_id': sheet_id, 'count': count}, broadcast=True)


def queue_event(db: Session, event: ReportEvent) -> None:
    db.info.setdefault(OUTBOX_KEY, []).append(event)


def pending_events(db: Session) -> list[ReportEvent]:
    return list(db.info.get(OUTBOX_KEY, []))


def take_events(db: Session) -> list[ReportEvent]:
    return db.info.pop(OUTBOX_KEY, [])


async def commit_and_publish(db: Session, hub: RealtimeHub) -> None:
    """Commit the session, then release the events queued during it.

    Nothing is published when the commit fails; the session is rolled back and
    the queued events are discarded.
    """
    try:
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        dropped = take_events(db)
        logger.error('report_commit_failed', error=str(exc), dropped_events=len(dropped))
        raise StoreError('Could not save report changes') from exc

    for event in take_events(db):
        try:
            await hub.publish(event)
        except Exception as exc:
            # The write is already committed; a notifier fault must not fail it.
            logger.error('report_event_publish_failed', event_name=event.name, error=str(exc))
