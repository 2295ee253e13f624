from __future__ import annotations

import csv
import re
from datetime import date
from io import StringIO
from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen

from app.config import settings
from app.services.assignment_source import AssignmentRow

JP_DATE_RE = re.compile(r'(\d{4})年(\d{1,2})月(\d{1,2})日')
SEPARATED_DATE_RE = re.compile(r'^(\d{4})[/-](\d{1,2})[/-](\d{1,2})')


def column_index(column: str) -> int:
    """Spreadsheet column letters to a zero-based index (A=0, Z=25, AA=26)."""
    index = 0
    for char in column.strip().upper():
        if not 'A' <= char <= 'Z':
            raise ValueError(f'Invalid column reference: {column!r}')
        index = index * 26 + (ord(char) - 64)
    if index == 0:
        raise ValueError('Column reference cannot be empty')
    return index - 1


def parse_sheet_date(value: str) -> date | None:
    value = value.strip()
    if not value:
        return None
    match = JP_DATE_RE.search(value) or SEPARATED_DATE_RE.match(value)
    if not match:
        return None
    year, month, day = (int(part) for part in match.groups())
    try:
        return date(year, month, day)
    except ValueError:
        return None


def _cell(row: list[str], index: int | None) -> str:
    if index is None or index >= len(row):
        return ''
    return row[index].strip()


class SheetCsvAssignmentSource:
    def __init__(
        self,
        *,
        url: str | None = None,
        date_column: str | None = None,
        site_name_column: str | None = None,
        location_column: str | None = None,
        staff_column: str | None = None,
        job_column: str | None = None,
        start_row: int | None = None,
        timeout_seconds: int | None = None,
    ) -> None:
        self.url = url or settings.sheet_csv_url
        if not self.url:
            raise ValueError('SHEET_CSV_URL is required when ASSIGNMENT_PROVIDER=sheet_csv')
        self.date_idx = column_index(date_column or settings.sheet_date_column)
        self.site_idx = column_index(site_name_column or settings.sheet_site_name_column)
        staff = staff_column or settings.sheet_staff_column
        self.staff_idx = column_index(staff)
        location = location_column if location_column is not None else settings.sheet_location_column
        self.location_idx = column_index(location) if location else None
        job = job_column if job_column is not None else settings.sheet_job_column
        self.job_idx = column_index(job) if job else None
        self.start_row = max(1, start_row or settings.sheet_start_row)
        self.timeout_seconds = timeout_seconds or settings.sheet_timeout_seconds

    def _download(self) -> str:
        req = Request(url=self.url, headers={'Accept': 'text/csv', 'User-Agent': 'site-report-workflow'}, method='GET')
        try:
            with urlopen(req, timeout=self.timeout_seconds) as response:
                return response.read().decode('utf-8-sig')
        except HTTPError as exc:
            if exc.code in {401, 403}:
                raise ValueError('Spreadsheet is not published; share it or publish it as CSV') from exc
            raise ValueError(f'Spreadsheet fetch failed with HTTP {exc.code}') from exc
        except URLError as exc:
            raise ValueError(f'Spreadsheet network error: {exc.reason}') from exc
        except OSError as exc:
            # Read timeouts surface as TimeoutError, outside URLError.
            raise ValueError(f'Spreadsheet read failed: {exc}') from exc

    def parse_rows(self, text: str) -> list[AssignmentRow]:
        rows: list[AssignmentRow] = []
        for line_no, raw in enumerate(csv.reader(StringIO(text)), start=1):
            if line_no < self.start_row:
                continue
            date_value = _cell(raw, self.date_idx)
            site_name = _cell(raw, self.site_idx)
            staff_name = _cell(raw, self.staff_idx)
            if not date_value or not site_name or not staff_name:
                continue
            row_date = parse_sheet_date(date_value)
            if row_date is None:
                continue
            rows.append(
                AssignmentRow(
                    date=row_date,
                    site_name=site_name,
                    staff_name=staff_name,
                    location=_cell(raw, self.location_idx) or None,
                    job_id=_cell(raw, self.job_idx) or None,
                )
            )
        return rows

    def fetch_rows(self, *, target_date: date) -> list[AssignmentRow]:
        return [row for row in self.parse_rows(self._download()) if row.date == target_date]
