from __future__ import annotations

from datetime import datetime, timezone

import structlog
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.errors import NotFoundError, ValidationError
from app.models import CommentType, Report, ReportComment, ReportStatus, Role
from app.services import report_events
from app.services.report_events import queue_event

logger = structlog.get_logger(__name__)

SYSTEM_ACTOR = 'system'

# Only consulted in strict mode. The default engine accepts any target from any state.
ALLOWED_TRANSITIONS: dict[ReportStatus, frozenset[ReportStatus]] = {
    ReportStatus.DRAFT: frozenset({ReportStatus.STAFF_SUBMITTED}),
    ReportStatus.STAFF_SUBMITTED: frozenset({ReportStatus.CHIEF_SUBMITTED_TO_SALES, ReportStatus.DRAFT}),
    ReportStatus.CHIEF_SUBMITTED_TO_SALES: frozenset(
        {ReportStatus.RETURNED_BY_SALES, ReportStatus.SUBMITTED_TO_ACCOUNTING}
    ),
    ReportStatus.RETURNED_BY_SALES: frozenset({ReportStatus.STAFF_SUBMITTED, ReportStatus.CHIEF_SUBMITTED_TO_SALES}),
    ReportStatus.SUBMITTED_TO_ACCOUNTING: frozenset({ReportStatus.RETURNED_BY_ACCOUNTING, ReportStatus.COMPLETED}),
    ReportStatus.RETURNED_BY_ACCOUNTING: frozenset(
        {ReportStatus.SUBMITTED_TO_ACCOUNTING, ReportStatus.RETURNED_BY_SALES}
    ),
    ReportStatus.COMPLETED: frozenset(),
}

NEXT_ACTOR: dict[ReportStatus, Role] = {
    ReportStatus.DRAFT: Role.STAFF,
    ReportStatus.STAFF_SUBMITTED: Role.CHIEF,
    ReportStatus.CHIEF_SUBMITTED_TO_SALES: Role.SALES,
    ReportStatus.RETURNED_BY_SALES: Role.STAFF,
    ReportStatus.SUBMITTED_TO_ACCOUNTING: Role.ACCOUNTING,
    ReportStatus.RETURNED_BY_ACCOUNTING: Role.SALES,
}


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


def parse_status(value: str | ReportStatus | None) -> ReportStatus:
    if isinstance(value, ReportStatus):
        return value
    if not value:
        raise ValidationError('status is required')
    try:
        return ReportStatus(value.strip())
    except ValueError as exc:
        raise ValidationError('Invalid status') from exc


def next_actor_role(status: ReportStatus) -> Role | None:
    """Role expected to act on a report in this status; ``None`` once completed."""
    return NEXT_ACTOR.get(status)


def _append_comment(db: Session, *, report_id: int, comment_type: CommentType, text: str, actor: str) -> ReportComment:
    comment = ReportComment(report_id=report_id, comment_type=comment_type, comment_text=text, created_by=actor)
    db.add(comment)
    db.flush()
    return comment


def transition(
    db: Session,
    *,
    report_id: int,
    new_status: str | ReportStatus | None,
    reason: str | None = None,
    actor: str | None = None,
    strict: bool = False,
) -> Report:
    """Move a report to ``new_status`` and record the audit trail.

    The status write and both comment rows share the caller's transaction, so a
    failure on any of them leaves nothing behind once the caller rolls back.
    """
    target = parse_status(new_status)
    report = db.execute(select(Report).where(Report.id == report_id)).scalar_one_or_none()
    if not report:
        raise NotFoundError('Report not found')

    if strict and target not in ALLOWED_TRANSITIONS[report.status]:
        raise ValidationError(f'Cannot move report from {report.status.value} to {target.value}')

    reason = reason.strip() if reason and reason.strip() else None
    actor = actor.strip() if actor and actor.strip() else SYSTEM_ACTOR
    previous = report.status

    report.status = target
    report.return_reason = reason
    report.updated_by = actor
    report.updated_at = _now()
    db.flush()

    if reason:
        _append_comment(db, report_id=report.id, comment_type=CommentType.RETURN_REASON, text=reason, actor=actor)
    _append_comment(
        db,
        report_id=report.id,
        comment_type=CommentType.STATUS_CHANGE,
        text=f'Status changed to {target.value}',
        actor=actor,
    )

    queue_event(db, report_events.status_changed(report.id, target))
    logger.info(
        'report_status_changed',
        report_id=report.id,
        from_status=previous.value,
        to_status=target.value,
        actor=actor,
        with_reason=bool(reason),
    )
    return report


def add_comment(db: Session, *, report_id: int, text: str | None, actor: str | None) -> ReportComment:
    if not text or not text.strip():
        raise ValidationError('comment_text is required')
    exists = db.execute(select(Report.id).where(Report.id == report_id)).scalar_one_or_none()
    if not exists:
        raise NotFoundError('Report not found')
    comment = _append_comment(
        db,
        report_id=report_id,
        comment_type=CommentType.COMMENT,
        text=text.strip(),
        actor=actor.strip() if actor and actor.strip() else SYSTEM_ACTOR,
    )
    queue_event(db, report_events.report_updated(report_id))
    return comment


def list_comments(db: Session, *, report_id: int) -> list[ReportComment]:
    exists = db.execute(select(Report.id).where(Report.id == report_id)).scalar_one_or_none()
    if not exists:
        raise NotFoundError('Report not found')
    return db.execute(
        select(ReportComment).where(ReportComment.report_id == report_id).order_by(ReportComment.id.asc())
    ).scalars().all()
