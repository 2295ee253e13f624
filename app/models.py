from __future__ import annotations

from datetime import date, datetime, time
from enum import Enum

from sqlalchemy import (
    BigInteger,
    Boolean,
    Date,
    DateTime,
    Enum as SQLEnum,
    ForeignKey,
    Integer,
    Text,
    Time,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

# SQLite only autoincrements INTEGER PRIMARY KEY columns.
IdType = BigInteger().with_variant(Integer, 'sqlite')


class Base(DeclarativeBase):
    pass


class Role(str, Enum):
    STAFF = 'staff'
    CHIEF = 'chief'
    SALES = 'sales'
    ACCOUNTING = 'accounting'
    ADMIN = 'admin'


class ReportStatus(str, Enum):
    DRAFT = 'draft'
    STAFF_SUBMITTED = 'staff_submitted'
    CHIEF_SUBMITTED_TO_SALES = 'chief_submitted_to_sales'
    RETURNED_BY_SALES = 'returned_by_sales'
    SUBMITTED_TO_ACCOUNTING = 'submitted_to_accounting'
    RETURNED_BY_ACCOUNTING = 'returned_by_accounting'
    COMPLETED = 'completed'


class CommentType(str, Enum):
    COMMENT = 'comment'
    RETURN_REASON = 'return_reason'
    STATUS_CHANGE = 'status_change'


def _enum_values(enum_cls) -> list[str]:
    return [member.value for member in enum_cls]


class Site(Base):
    __tablename__ = 'sites'
    __table_args__ = (
        UniqueConstraint('year', 'month', 'site_code', name='sites_year_month_code_key'),
    )

    id: Mapped[int] = mapped_column(IdType, primary_key=True)
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    month: Mapped[int] = mapped_column(Integer, nullable=False)
    site_code: Mapped[str] = mapped_column(Text, nullable=False)
    site_name: Mapped[str] = mapped_column(Text, nullable=False)
    site_name_key: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    location: Mapped[str | None] = mapped_column(Text)
    site_date: Mapped[date | None] = mapped_column(Date)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class Report(Base):
    __tablename__ = 'reports'
    __table_args__ = (
        UniqueConstraint('report_date', 'site_name_key', name='reports_date_site_key'),
    )

    id: Mapped[int] = mapped_column(IdType, primary_key=True)
    report_date: Mapped[date] = mapped_column(Date, nullable=False)
    site_id: Mapped[int | None] = mapped_column(IdType, ForeignKey('sites.id', ondelete='SET NULL'))
    site_code: Mapped[str | None] = mapped_column(Text)
    site_name: Mapped[str] = mapped_column(Text, nullable=False)
    site_name_key: Mapped[str] = mapped_column(Text, nullable=False)
    location: Mapped[str | None] = mapped_column(Text)
    chief_name: Mapped[str | None] = mapped_column(Text)
    status: Mapped[ReportStatus] = mapped_column(
        SQLEnum(ReportStatus, name='report_status', values_callable=_enum_values),
        nullable=False,
        default=ReportStatus.DRAFT,
        server_default=ReportStatus.DRAFT.value,
    )
    staff_report_content: Mapped[str | None] = mapped_column(Text)
    chief_report_content: Mapped[str | None] = mapped_column(Text)
    sales_comment: Mapped[str | None] = mapped_column(Text)
    accounting_comment: Mapped[str | None] = mapped_column(Text)
    return_reason: Mapped[str | None] = mapped_column(Text)
    created_by: Mapped[str | None] = mapped_column(Text)
    updated_by: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())

    site: Mapped[Site | None] = relationship(lazy='joined')
    times: Mapped[ReportTime | None] = relationship(
        back_populates='report', uselist=False, cascade='all, delete-orphan'
    )
    staff_entries: Mapped[list[ReportStaffEntry]] = relationship(
        back_populates='report',
        cascade='all, delete-orphan',
        order_by='ReportStaffEntry.id',
    )
    comments: Mapped[list[ReportComment]] = relationship(
        cascade='all, delete-orphan', order_by='ReportComment.id'
    )
    photos: Mapped[list[ReportPhoto]] = relationship(cascade='all, delete-orphan')


class ReportTime(Base):
    __tablename__ = 'report_times'
    __table_args__ = (
        UniqueConstraint('report_id', name='report_times_report_id_key'),
    )

    id: Mapped[int] = mapped_column(IdType, primary_key=True)
    report_id: Mapped[int] = mapped_column(IdType, ForeignKey('reports.id', ondelete='CASCADE'), nullable=False)
    meeting_time: Mapped[time | None] = mapped_column(Time)
    arrival_time: Mapped[time | None] = mapped_column(Time)
    finish_time: Mapped[time | None] = mapped_column(Time)
    departure_time: Mapped[time | None] = mapped_column(Time)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())

    report: Mapped[Report] = relationship(back_populates='times')


class ReportStaffEntry(Base):
    __tablename__ = 'report_staff_entries'
    __table_args__ = (
        UniqueConstraint('report_id', 'staff_name', name='report_staff_entries_report_staff_key'),
    )

    id: Mapped[int] = mapped_column(IdType, primary_key=True)
    report_id: Mapped[int] = mapped_column(IdType, ForeignKey('reports.id', ondelete='CASCADE'), nullable=False)
    staff_name: Mapped[str] = mapped_column(Text, nullable=False)
    report_content: Mapped[str | None] = mapped_column(Text)
    is_driving: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default='false')
    is_laundry: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default='false')
    is_partition: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default='false')
    is_warehouse: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default='false')
    is_accommodation: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default='false')
    is_selection: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default='false')
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())

    report: Mapped[Report] = relationship(back_populates='staff_entries')


class ReportComment(Base):
    __tablename__ = 'report_comments'

    id: Mapped[int] = mapped_column(IdType, primary_key=True)
    report_id: Mapped[int] = mapped_column(IdType, ForeignKey('reports.id', ondelete='CASCADE'), nullable=False)
    comment_type: Mapped[CommentType] = mapped_column(
        SQLEnum(CommentType, name='report_comment_type', values_callable=_enum_values),
        nullable=False,
    )
    comment_text: Mapped[str] = mapped_column(Text, nullable=False)
    created_by: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class ReportPhoto(Base):
    __tablename__ = 'report_photos'

    id: Mapped[int] = mapped_column(IdType, primary_key=True)
    report_id: Mapped[int] = mapped_column(IdType, ForeignKey('reports.id', ondelete='CASCADE'), nullable=False)
    file_name: Mapped[str] = mapped_column(Text, nullable=False)
    expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
