from __future__ import annotations

import asyncio
from datetime import date

import structlog

from app.services.assignment_source import AssignmentRow, AssignmentSource
from app.services.site_service import normalize_site_name

logger = structlog.get_logger(__name__)

UNASSIGNED = 'unassigned'


def match_assignment(
    rows: list[AssignmentRow],
    *,
    site_name: str,
    job_id: str | None = None,
    location: str | None = None,
) -> AssignmentRow | None:
    """Pick the row for a report slot; the first rule that hits wins.

    1. exact job/lot id
    2. normalized site name and location
    3. normalized site name
    4. one normalized site name contains the other
    """
    job_id = job_id.strip() if job_id else None
    if job_id:
        for row in rows:
            if row.job_id and row.job_id.strip() == job_id:
                return row

    site_key = normalize_site_name(site_name)
    if not site_key:
        return None
    keyed = [(normalize_site_name(row.site_name), row) for row in rows]

    location_key = normalize_site_name(location)
    if location_key:
        for row_key, row in keyed:
            if row_key == site_key and normalize_site_name(row.location) == location_key:
                return row

    for row_key, row in keyed:
        if row_key == site_key:
            return row

    for row_key, row in keyed:
        if row_key and (site_key in row_key or row_key in site_key):
            return row
    return None


class AssignmentResolver:
    """Per-date cached lookup of externally assigned staff.

    Concurrent lookups for a date that is not cached yet share one fetch. A fetch
    that finishes after ``invalidate`` is returned to its waiters but not cached.
    """

    def __init__(self, source: AssignmentSource) -> None:
        self.source = source
        self._cache: dict[date, list[AssignmentRow]] = {}
        self._inflight: dict[date, asyncio.Future] = {}
        self._generation = 0

    async def _fetch(self, target_date: date, generation: int) -> list[AssignmentRow]:
        try:
            rows = await asyncio.to_thread(self.source.fetch_rows, target_date=target_date)
        except Exception as exc:
            logger.warning('assignment_fetch_failed', date=target_date.isoformat(), error=str(exc))
            raise
        finally:
            self._inflight.pop(target_date, None)
        if generation == self._generation:
            self._cache[target_date] = rows
        return rows

    async def rows_for(self, target_date: date) -> list[AssignmentRow]:
        cached = self._cache.get(target_date)
        if cached is not None:
            return cached
        pending = self._inflight.get(target_date)
        if pending is None:
            pending = asyncio.ensure_future(self._fetch(target_date, self._generation))
            self._inflight[target_date] = pending
        return await asyncio.shield(pending)

    async def resolve(
        self,
        report_date: date,
        site_name: str,
        job_id: str | None = None,
        location: str | None = None,
    ) -> str:
        rows = await self.rows_for(report_date)
        row = match_assignment(rows, site_name=site_name, job_id=job_id, location=location)
        return row.staff_name if row else UNASSIGNED

    async def is_assigned_to(
        self,
        staff_name: str,
        report_date: date,
        site_name: str,
        job_id: str | None = None,
        location: str | None = None,
    ) -> bool:
        assigned = await self.resolve(report_date, site_name, job_id=job_id, location=location)
        return assigned != UNASSIGNED and assigned.strip() == staff_name.strip()

    def invalidate(self, report_date: date | None = None) -> None:
        self._generation += 1
        if report_date is None:
            self._cache.clear()
        else:
            self._cache.pop(report_date, None)
