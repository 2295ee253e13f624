from __future__ import annotations

import argparse
import json
from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen

from app.db import SessionLocal
from app.services.sheet_assignment_source import SheetCsvAssignmentSource
from app.services.site_service import upsert_site


def site_code_for(year: int, month: int, site_name: str) -> str:
    return f'{year}{month:02d}_{site_name.strip()[:10]}'


def sync_sites(*, year: int, month: int, source: SheetCsvAssignmentSource | None = None) -> int:
    """Upsert the month's site master from the published assignment sheet."""
    source = source or SheetCsvAssignmentSource()
    rows = [row for row in source.parse_rows(source._download()) if row.date.year == year and row.date.month == month]

    count = 0
    with SessionLocal() as db:
        for row in rows:
            upsert_site(
                db,
                year=year,
                month=month,
                site_code=site_code_for(year, month, row.site_name),
                site_name=row.site_name,
                location=row.location,
                site_date=row.date,
            )
            count += 1
        db.commit()
    return count


def notify_resync(base_url: str, *, sheet_id: str, count: int, timeout_seconds: int = 10) -> None:
    req = Request(
        url=f"{base_url.rstrip('/')}/api/assignments/resync",
        data=json.dumps({'sheet_id': sheet_id, 'row_count': count}).encode('utf-8'),
        headers={'Content-Type': 'application/json'},
        method='POST',
    )
    try:
        with urlopen(req, timeout=timeout_seconds) as response:
            response.read()
    except HTTPError as exc:
        raise RuntimeError(f'Resync notification failed with HTTP {exc.code}') from exc
    except URLError as exc:
        raise RuntimeError(f'Resync notification network error: {exc.reason}') from exc


def main() -> None:
    parser = argparse.ArgumentParser(description='Sync the monthly site master from the assignment spreadsheet.')
    parser.add_argument('--year', type=int, required=True)
    parser.add_argument('--month', type=int, required=True)
    parser.add_argument('--sheet-id', default='default', help='Identifier reported in the sheet:synced event.')
    parser.add_argument(
        '--notify-url',
        help='Base URL of a running API; when given, its assignment cache is cleared after the sync.',
    )
    args = parser.parse_args()

    count = sync_sites(year=args.year, month=args.month)
    if args.notify_url:
        notify_resync(args.notify_url, sheet_id=args.sheet_id, count=count)
    print(f'Site sync complete: rows={count}')


if __name__ == '__main__':
    main()
