from __future__ import annotations

from datetime import date

from fastapi import APIRouter, Depends, Query, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from app.config import settings
from app.db import get_db
from app.dependencies import actor_from, get_hub
from app.errors import ValidationError
from app.models import ReportComment, Role
from app.schemas import (
    CommentCreate,
    PhotoRegister,
    ReportCreate,
    ReportUpdate,
    StaffEntryUpsert,
    StatusChange,
    TimesUpdate,
)
from app.services.photo_service import add_photo, photo_summary, remove_photo_files
from app.services.realtime_hub import RealtimeHub
from app.services.report_events import commit_and_publish
from app.services.report_service import (
    ReportFilter,
    delete_report,
    delete_staff_entry,
    find_or_create_report,
    get_report,
    get_report_detail,
    list_reports,
    serialize_report,
    update_report,
    upsert_staff_entry,
    upsert_times,
)
from app.services.status_service import add_comment, list_comments, next_actor_role, parse_status, transition

router = APIRouter(prefix='/api/reports', tags=['reports'])


def _parse_role(value: str | None) -> Role | None:
    if not value:
        return None
    try:
        return Role(value.strip().lower())
    except ValueError as exc:
        raise ValidationError(f'Unknown role: {value}') from exc


def _serialize_comment(comment: ReportComment) -> dict:
    return {
        'id': comment.id,
        'report_id': comment.report_id,
        'comment_type': comment.comment_type.value,
        'comment_text': comment.comment_text,
        'created_by': comment.created_by,
        'created_at': comment.created_at,
    }


def _detail(db: Session, report_id: int) -> dict:
    detail = get_report_detail(db, report_id)
    next_role = next_actor_role(parse_status(detail['status']))
    detail['next_role'] = next_role.value if next_role else None
    return detail


@router.get('')
def list_reports_endpoint(
    role: str | None = None,
    staff_name: str | None = None,
    date_from: date | None = None,
    date_to: date | None = None,
    site_code: str | None = None,
    site_name: str | None = None,
    location: str | None = None,
    chief_name: str | None = None,
    status_filter: str | None = Query(default=None, alias='status'),
    db: Session = Depends(get_db),
):
    filters = ReportFilter(
        role=_parse_role(role),
        staff_name=staff_name,
        date_from=date_from,
        date_to=date_to,
        site_code=site_code,
        site_name=site_name,
        location=location,
        chief_name=chief_name,
        status=parse_status(status_filter) if status_filter else None,
    )
    return [serialize_report(report) for report in list_reports(db, filters)]


@router.get('/{report_id}')
def get_report_endpoint(report_id: int, db: Session = Depends(get_db)):
    return _detail(db, report_id)


@router.post('')
async def create_report_endpoint(
    payload: ReportCreate,
    request: Request,
    db: Session = Depends(get_db),
    hub: RealtimeHub = Depends(get_hub),
):
    created_by = actor_from(request, payload.created_by or payload.staff_name)
    report, created = find_or_create_report(
        db,
        report_date=payload.report_date,
        site_name=payload.site_name,
        site_code=payload.site_code,
        site_id=payload.site_id,
        location=payload.location,
        chief_name=payload.chief_name,
        staff_report_content=payload.report_content,
        created_by=created_by,
    )
    if payload.staff_name and payload.report_content:
        upsert_staff_entry(
            db,
            report_id=report.id,
            staff_name=payload.staff_name,
            fields={'report_content': payload.report_content},
        )
    await commit_and_publish(db, hub)
    return JSONResponse(
        status_code=status.HTTP_201_CREATED if created else status.HTTP_200_OK,
        content={'id': report.id, 'created': created, 'status': report.status.value},
    )


@router.put('/{report_id}')
async def update_report_endpoint(
    report_id: int,
    payload: ReportUpdate,
    request: Request,
    db: Session = Depends(get_db),
    hub: RealtimeHub = Depends(get_hub),
):
    fields = payload.model_dump(exclude_unset=True)
    actor = actor_from(request, fields.pop('updated_by', None) or fields.get('role'))
    update_report(db, report_id=report_id, fields=fields, actor=actor)
    await commit_and_publish(db, hub)
    return _detail(db, report_id)


@router.delete('/{report_id}')
async def delete_report_endpoint(
    report_id: int,
    request: Request,
    db: Session = Depends(get_db),
    hub: RealtimeHub = Depends(get_hub),
):
    file_names = delete_report(db, report_id=report_id, actor=actor_from(request, None))
    await commit_and_publish(db, hub)
    removed = remove_photo_files(file_names)
    return {'deleted': report_id, 'photos_removed': removed}


@router.post('/{report_id}/status')
async def change_status_endpoint(
    report_id: int,
    payload: StatusChange,
    request: Request,
    db: Session = Depends(get_db),
    hub: RealtimeHub = Depends(get_hub),
):
    report = transition(
        db,
        report_id=report_id,
        new_status=payload.status,
        reason=payload.return_reason,
        actor=actor_from(request, payload.updated_by),
        strict=settings.strict_transitions,
    )
    await commit_and_publish(db, hub)
    return {'id': report.id, 'status': report.status.value, 'return_reason': report.return_reason}


@router.get('/{report_id}/comments')
def list_comments_endpoint(report_id: int, db: Session = Depends(get_db)):
    return [_serialize_comment(comment) for comment in list_comments(db, report_id=report_id)]


@router.post('/{report_id}/comments', status_code=status.HTTP_201_CREATED)
async def add_comment_endpoint(
    report_id: int,
    payload: CommentCreate,
    request: Request,
    db: Session = Depends(get_db),
    hub: RealtimeHub = Depends(get_hub),
):
    comment = add_comment(
        db,
        report_id=report_id,
        text=payload.comment_text,
        actor=actor_from(request, payload.created_by),
    )
    await commit_and_publish(db, hub)
    return _serialize_comment(comment)


@router.put('/{report_id}/times')
async def upsert_times_endpoint(
    report_id: int,
    payload: TimesUpdate,
    db: Session = Depends(get_db),
    hub: RealtimeHub = Depends(get_hub),
):
    record = upsert_times(db, report_id=report_id, times=payload.model_dump(exclude_unset=True))
    await commit_and_publish(db, hub)
    return {
        'report_id': report_id,
        'meeting_time': record.meeting_time,
        'arrival_time': record.arrival_time,
        'finish_time': record.finish_time,
        'departure_time': record.departure_time,
    }


@router.post('/{report_id}/staff-entries')
async def upsert_staff_entry_endpoint(
    report_id: int,
    payload: StaffEntryUpsert,
    db: Session = Depends(get_db),
    hub: RealtimeHub = Depends(get_hub),
):
    fields = payload.model_dump(exclude_unset=True, exclude={'staff_name'})
    entry = upsert_staff_entry(db, report_id=report_id, staff_name=payload.staff_name, fields=fields)
    await commit_and_publish(db, hub)
    return {'id': entry.id, 'report_id': report_id, 'staff_name': entry.staff_name}


@router.delete('/{report_id}/staff-entries/{entry_id}')
async def delete_staff_entry_endpoint(
    report_id: int,
    entry_id: int,
    db: Session = Depends(get_db),
    hub: RealtimeHub = Depends(get_hub),
):
    delete_staff_entry(db, report_id=report_id, entry_id=entry_id)
    await commit_and_publish(db, hub)
    return {'deleted': entry_id}


@router.get('/{report_id}/photos/summary')
def photo_summary_endpoint(report_id: int, db: Session = Depends(get_db)):
    get_report(db, report_id)
    return photo_summary(db, report_id=report_id)


@router.post('/{report_id}/photos', status_code=status.HTTP_201_CREATED)
async def register_photo_endpoint(
    report_id: int,
    payload: PhotoRegister,
    db: Session = Depends(get_db),
    hub: RealtimeHub = Depends(get_hub),
):
    photo = add_photo(db, report_id=report_id, file_name=payload.file_name, expires_at=payload.expires_at)
    await commit_and_publish(db, hub)
    return {'id': photo.id, 'report_id': report_id, 'file_name': photo.file_name}
