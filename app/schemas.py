from __future__ import annotations

from datetime import date, datetime, time

from pydantic import BaseModel, ConfigDict


class ReportCreate(BaseModel):
    report_date: date
    site_name: str
    site_code: str | None = None
    site_id: int | None = None
    location: str | None = None
    chief_name: str | None = None
    staff_name: str | None = None
    report_content: str | None = None
    created_by: str | None = None


class ReportUpdate(BaseModel):
    # Unknown keys are accepted and dropped by the service whitelist.
    model_config = ConfigDict(extra='allow')

    site_id: int | None = None
    site_code: str | None = None
    site_name: str | None = None
    location: str | None = None
    chief_name: str | None = None
    staff_report_content: str | None = None
    chief_report_content: str | None = None
    sales_comment: str | None = None
    accounting_comment: str | None = None
    updated_by: str | None = None
    role: str | None = None


class StatusChange(BaseModel):
    status: str
    return_reason: str | None = None
    updated_by: str | None = None


class TimesUpdate(BaseModel):
    meeting_time: time | None = None
    arrival_time: time | None = None
    finish_time: time | None = None
    departure_time: time | None = None


class StaffEntryUpsert(BaseModel):
    staff_name: str
    report_content: str | None = None
    is_driving: bool | None = None
    is_laundry: bool | None = None
    is_partition: bool | None = None
    is_warehouse: bool | None = None
    is_accommodation: bool | None = None
    is_selection: bool | None = None


class CommentCreate(BaseModel):
    comment_text: str
    created_by: str | None = None


class PhotoRegister(BaseModel):
    file_name: str
    expires_at: datetime | None = None


class AssignmentResync(BaseModel):
    sheet_id: int | str
    row_count: int = 0
    report_date: date | None = None
