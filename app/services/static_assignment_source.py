from __future__ import annotations

from datetime import date

from app.services.assignment_source import AssignmentRow


class StaticAssignmentSource:
    def __init__(self, rows: list[AssignmentRow] | None = None) -> None:
        self.rows: list[AssignmentRow] = list(rows or [])
        self.fetch_count = 0

    def replace(self, rows: list[AssignmentRow]) -> None:
        self.rows = list(rows)

    def fetch_rows(self, *, target_date: date) -> list[AssignmentRow]:
        self.fetch_count += 1
        return [row for row in self.rows if row.date == target_date]
