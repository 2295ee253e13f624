from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Protocol


@dataclass(frozen=True)
class AssignmentRow:
    date: date
    site_name: str
    staff_name: str
    location: str | None = None
    job_id: str | None = None


class AssignmentSource(Protocol):
    def fetch_rows(self, *, target_date: date) -> list[AssignmentRow]: ...
