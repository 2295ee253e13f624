from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time, timezone

import structlog
from sqlalchemy import and_, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from app.errors import ConflictError, NotFoundError, ValidationError
from app.models import Report, ReportStaffEntry, ReportStatus, ReportTime, Role, Site
from app.services import report_events
from app.services.photo_service import count_photos, photo_file_names
from app.services.report_events import queue_event
from app.services.site_service import normalize_site_name, resolve_site

logger = structlog.get_logger(__name__)

UPDATABLE_FIELDS = (
    'site_id',
    'site_code',
    'site_name',
    'location',
    'chief_name',
    'staff_report_content',
    'chief_report_content',
    'sales_comment',
    'accounting_comment',
)

TIME_FIELDS = ('meeting_time', 'arrival_time', 'finish_time', 'departure_time')

STAFF_ENTRY_FIELDS = (
    'report_content',
    'is_driving',
    'is_laundry',
    'is_partition',
    'is_warehouse',
    'is_accommodation',
    'is_selection',
)

ROLE_STATUS_SCOPE: dict[Role, tuple[ReportStatus, ...]] = {
    Role.SALES: (
        ReportStatus.CHIEF_SUBMITTED_TO_SALES,
        ReportStatus.RETURNED_BY_SALES,
        ReportStatus.SUBMITTED_TO_ACCOUNTING,
    ),
    Role.ACCOUNTING: (
        ReportStatus.SUBMITTED_TO_ACCOUNTING,
        ReportStatus.RETURNED_BY_ACCOUNTING,
    ),
}


@dataclass
class ReportFilter:
    role: Role | None = None
    staff_name: str | None = None
    date_from: date | None = None
    date_to: date | None = None
    site_code: str | None = None
    site_name: str | None = None
    location: str | None = None
    chief_name: str | None = None
    status: ReportStatus | None = None


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


def _clean(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    return value or None


def _find_existing(db: Session, *, report_date: date, site_name_key: str) -> Report | None:
    return db.execute(
        select(Report).where(Report.report_date == report_date, Report.site_name_key == site_name_key)
    ).scalar_one_or_none()


def find_or_create_report(
    db: Session,
    *,
    report_date: date | None,
    site_name: str | None,
    site_code: str | None = None,
    site_id: int | None = None,
    location: str | None = None,
    chief_name: str | None = None,
    staff_report_content: str | None = None,
    created_by: str | None = None,
) -> tuple[Report, bool]:
    """Return the report for (date, site name), creating it in draft if none exists.

    Concurrent callers converge on one row: the insert runs in a savepoint, and a
    unique-key violation means another caller won, so the winner is re-selected.
    """
    if report_date is None:
        raise ValidationError('report_date is required')
    site_name = _clean(site_name)
    if not site_name:
        raise ValidationError('site_name is required')
    site_name_key = normalize_site_name(site_name)

    existing = _find_existing(db, report_date=report_date, site_name_key=site_name_key)
    if existing:
        return existing, False

    site = resolve_site(
        db,
        report_date=report_date,
        site_name=site_name,
        site_code=_clean(site_code),
        site_id=site_id,
        location=_clean(location),
    )
    report = Report(
        report_date=report_date,
        site_id=site.site_id,
        site_code=site.site_code,
        site_name=site_name,
        site_name_key=site_name_key,
        location=site.location,
        chief_name=_clean(chief_name),
        status=ReportStatus.DRAFT,
        staff_report_content=staff_report_content,
        created_by=_clean(created_by),
        updated_by=_clean(created_by),
    )
    try:
        with db.begin_nested():
            db.add(report)
            db.flush()
    except IntegrityError:
        winner = _find_existing(db, report_date=report_date, site_name_key=site_name_key)
        if winner is None:
            raise ConflictError(f'Report for {site_name} on {report_date.isoformat()} could not be created')
        logger.info('report_create_race_absorbed', report_id=winner.id, report_date=report_date.isoformat())
        return winner, False

    queue_event(db, report_events.report_created(report.id))
    logger.info('report_created', report_id=report.id, report_date=report_date.isoformat(), site_code=report.site_code)
    return report, True


def get_report(db: Session, report_id: int) -> Report:
    report = db.execute(
        select(Report)
        .where(Report.id == report_id)
        .options(selectinload(Report.times), selectinload(Report.staff_entries))
    ).scalar_one_or_none()
    if not report:
        raise NotFoundError('Report not found')
    return report


def _serialize_time(value: time | None) -> str | None:
    return value.isoformat() if value else None


def serialize_report(report: Report) -> dict:
    return {
        'id': report.id,
        'report_date': report.report_date.isoformat(),
        'site_id': report.site_id,
        'site_code': report.site_code,
        'site_name': report.site_name,
        'location': report.location,
        'site_location': report.site.location if report.site else None,
        'chief_name': report.chief_name,
        'status': report.status.value,
        'staff_report_content': report.staff_report_content,
        'chief_report_content': report.chief_report_content,
        'sales_comment': report.sales_comment,
        'accounting_comment': report.accounting_comment,
        'return_reason': report.return_reason,
        'created_by': report.created_by,
        'updated_by': report.updated_by,
        'created_at': report.created_at,
        'updated_at': report.updated_at,
    }


def get_report_detail(db: Session, report_id: int) -> dict:
    report = get_report(db, report_id)
    detail = serialize_report(report)
    times = report.times
    detail['times'] = (
        {field: _serialize_time(getattr(times, field)) for field in TIME_FIELDS} if times is not None else None
    )
    detail['staff_entries'] = [
        {
            'id': entry.id,
            'staff_name': entry.staff_name,
            **{field: getattr(entry, field) for field in STAFF_ENTRY_FIELDS},
        }
        for entry in report.staff_entries
    ]
    detail['photo_count'] = count_photos(db, report_id=report.id)
    return detail


def list_reports(db: Session, filters: ReportFilter) -> list[Report]:
    conditions = []
    if filters.role == Role.STAFF:
        conditions.append(Report.created_by == (filters.staff_name or ''))
    elif filters.role in ROLE_STATUS_SCOPE:
        conditions.append(Report.status.in_(ROLE_STATUS_SCOPE[filters.role]))

    if filters.chief_name:
        conditions.append(Report.chief_name == filters.chief_name)
    if filters.date_from:
        conditions.append(Report.report_date >= filters.date_from)
    if filters.date_to:
        conditions.append(Report.report_date <= filters.date_to)
    if filters.site_code:
        conditions.append(Report.site_code.contains(filters.site_code, autoescape=True))
    if filters.site_name:
        conditions.append(Report.site_name.contains(filters.site_name, autoescape=True))
    if filters.location:
        conditions.append(
            or_(
                Report.location.contains(filters.location, autoescape=True),
                Site.location.contains(filters.location, autoescape=True),
            )
        )
    if filters.status:
        conditions.append(Report.status == filters.status)

    query = (
        select(Report)
        .outerjoin(Site, Site.id == Report.site_id)
        .order_by(Report.report_date.desc(), Report.created_at.desc(), Report.id.desc())
    )
    if conditions:
        query = query.where(and_(*conditions))
    return db.execute(query).unique().scalars().all()


def update_report(db: Session, *, report_id: int, fields: dict, actor: str | None) -> Report:
    report = get_report(db, report_id)
    if 'site_name' in fields and not _clean(fields['site_name']):
        raise ValidationError('site_name cannot be empty')
    if fields.get('site_id') is not None and db.get(Site, fields['site_id']) is None:
        raise ValidationError(f"Unknown site_id: {fields['site_id']}")
    # Unknown keys are ignored so newer clients can send fields this server does not know.
    for field in UPDATABLE_FIELDS:
        if field in fields:
            setattr(report, field, fields[field])
    if 'site_name' in fields:
        report.site_name = _clean(fields['site_name'])
        report.site_name_key = normalize_site_name(report.site_name)
    report.updated_by = _clean(actor) or report.updated_by
    report.updated_at = _now()
    try:
        db.flush()
    except IntegrityError as exc:
        raise ConflictError('Another report already exists for this site and date') from exc
    queue_event(db, report_events.report_updated(report.id))
    return report


def upsert_times(db: Session, *, report_id: int, times: dict) -> ReportTime:
    report = get_report(db, report_id)
    record = report.times
    if record is None:
        record = ReportTime(report_id=report.id)
        db.add(record)
        report.times = record
    for field in TIME_FIELDS:
        if field in times:
            setattr(record, field, times[field])
    record.updated_at = _now()
    db.flush()
    queue_event(db, report_events.report_updated(report.id))
    return record


def _find_staff_entry(db: Session, *, report_id: int, staff_name: str) -> ReportStaffEntry | None:
    return db.execute(
        select(ReportStaffEntry).where(
            ReportStaffEntry.report_id == report_id,
            ReportStaffEntry.staff_name == staff_name,
        )
    ).scalar_one_or_none()


def _apply_staff_fields(entry: ReportStaffEntry, fields: dict) -> None:
    for field in STAFF_ENTRY_FIELDS:
        if field not in fields:
            continue
        value = fields[field]
        setattr(entry, field, value if field == 'report_content' else bool(value))
    entry.updated_at = _now()


def upsert_staff_entry(db: Session, *, report_id: int, staff_name: str, fields: dict) -> ReportStaffEntry:
    # staff_name is matched exactly; no case or whitespace folding.
    if not staff_name or not staff_name.strip():
        raise ValidationError('staff_name is required')
    report = get_report(db, report_id)

    entry = _find_staff_entry(db, report_id=report.id, staff_name=staff_name)
    if entry is None:
        entry = ReportStaffEntry(staff_name=staff_name)
        _apply_staff_fields(entry, fields)
        try:
            with db.begin_nested():
                report.staff_entries.append(entry)
                db.flush()
        except IntegrityError:
            entry = _find_staff_entry(db, report_id=report.id, staff_name=staff_name)
            if entry is None:
                raise ConflictError(f'Staff entry for {staff_name} could not be created')
            _apply_staff_fields(entry, fields)
            db.flush()
    else:
        _apply_staff_fields(entry, fields)
        db.flush()

    queue_event(db, report_events.staff_updated(report.id))
    return entry


def delete_staff_entry(db: Session, *, report_id: int, entry_id: int) -> None:
    entry = db.execute(
        select(ReportStaffEntry).where(ReportStaffEntry.id == entry_id, ReportStaffEntry.report_id == report_id)
    ).scalar_one_or_none()
    if not entry:
        raise NotFoundError('Staff entry not found')
    db.delete(entry)
    db.flush()
    queue_event(db, report_events.staff_updated(report_id))


def delete_report(db: Session, *, report_id: int, actor: str | None = None) -> list[str]:
    """Delete a report and its children. Returns photo file names to remove once committed."""
    report = db.execute(select(Report).where(Report.id == report_id)).scalar_one_or_none()
    if not report:
        raise NotFoundError('Report not found')
    file_names = photo_file_names(db, report_id=report.id)
    db.delete(report)
    db.flush()
    queue_event(db, report_events.report_updated(report_id))
    logger.info('report_deleted', report_id=report_id, actor=actor, photos=len(file_names))
    return file_names
