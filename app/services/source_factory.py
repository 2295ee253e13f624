from __future__ import annotations

from app.config import settings
from app.services.assignment_source import AssignmentSource
from app.services.sheet_assignment_source import SheetCsvAssignmentSource
from app.services.static_assignment_source import StaticAssignmentSource


def get_assignment_source() -> AssignmentSource:
    provider = settings.assignment_provider.strip().lower()
    if provider == 'sheet_csv':
        return SheetCsvAssignmentSource()
    return StaticAssignmentSource()
