from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path

import structlog
from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session

from app.config import settings
from app.errors import NotFoundError, ValidationError
from app.models import Report, ReportPhoto
from app.services import report_events
from app.services.report_events import queue_event

logger = structlog.get_logger(__name__)


def count_photos(db: Session, *, report_id: int) -> int:
    return db.execute(select(func.count(ReportPhoto.id)).where(ReportPhoto.report_id == report_id)).scalar_one()


def photo_summary(db: Session, *, report_id: int) -> dict:
    count = count_photos(db, report_id=report_id)
    return {'count': count, 'has_photos': count > 0, 'limit': settings.max_photos_per_report}


def ensure_photo_capacity(db: Session, *, report_id: int, adding: int = 1) -> None:
    if count_photos(db, report_id=report_id) + adding > settings.max_photos_per_report:
        raise ValidationError(f'A report can hold at most {settings.max_photos_per_report} photos')


def add_photo(db: Session, *, report_id: int, file_name: str, expires_at: datetime | None = None) -> ReportPhoto:
    clean_name = Path(file_name.strip()).name
    if not clean_name:
        raise ValidationError('file_name is required')
    if db.get(Report, report_id) is None:
        raise NotFoundError('Report not found')
    ensure_photo_capacity(db, report_id=report_id)
    photo = ReportPhoto(report_id=report_id, file_name=clean_name, expires_at=expires_at)
    db.add(photo)
    db.flush()
    queue_event(db, report_events.report_updated(report_id))
    return photo


def photo_file_names(db: Session, *, report_id: int) -> list[str]:
    return list(
        db.execute(select(ReportPhoto.file_name).where(ReportPhoto.report_id == report_id)).scalars().all()
    )


def purge_expired_photos(db: Session, *, now: datetime | None = None) -> list[str]:
    now = now or datetime.now(tz=timezone.utc)
    expired = db.execute(
        select(ReportPhoto.id, ReportPhoto.file_name).where(
            ReportPhoto.expires_at.is_not(None),
            ReportPhoto.expires_at <= now,
        )
    ).all()
    if expired:
        db.execute(delete(ReportPhoto).where(ReportPhoto.id.in_([row.id for row in expired])))
    return [row.file_name for row in expired]


def remove_photo_files(file_names: list[str], *, photo_dir: str | None = None) -> int:
    """Remove stored files after the owning rows are gone. Missing files are ignored."""
    base = Path(photo_dir or settings.photo_dir)
    removed = 0
    for name in file_names:
        path = base / Path(name).name
        try:
            path.unlink()
            removed += 1
        except FileNotFoundError:
            continue
        except OSError as exc:
            logger.warning('photo_file_remove_failed', file=str(path), error=str(exc))
    return removed
