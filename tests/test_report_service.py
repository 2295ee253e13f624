from __future__ import annotations

import unittest
from datetime import date, time
from unittest.mock import patch

from sqlalchemy import func, select

from app.errors import NotFoundError, ValidationError
from app.models import Report, ReportComment, ReportPhoto, ReportStaffEntry, ReportStatus, ReportTime, Role
from app.services import report_events, report_service
from app.services.photo_service import add_photo
from app.services.report_service import (
    ReportFilter,
    delete_report,
    find_or_create_report,
    get_report,
    get_report_detail,
    list_reports,
    update_report,
    upsert_staff_entry,
    upsert_times,
)
from app.services.site_service import upsert_site
from app.services.status_service import transition
from tests.db_support import TempDatabase

REPORT_DATE = date(2024, 6, 3)


class ReportServiceTests(unittest.TestCase):
    def setUp(self) -> None:
        self.database = TempDatabase()
        self.db = self.database.Session()

    def tearDown(self) -> None:
        self.db.close()
        self.database.close()

    def _create(self, site_name: str = 'Site A', **kwargs) -> Report:
        report, _created = find_or_create_report(self.db, report_date=REPORT_DATE, site_name=site_name, **kwargs)
        self.db.commit()
        return report

    def _count(self, model) -> int:
        return self.db.execute(select(func.count(model.id))).scalar_one()

    def test_find_or_create_is_idempotent_on_normalized_site_name(self) -> None:
        first, created = find_or_create_report(self.db, report_date=REPORT_DATE, site_name='Site A')
        self.assertTrue(created)
        self.assertEqual(first.status, ReportStatus.DRAFT)

        again, created_again = find_or_create_report(self.db, report_date=REPORT_DATE, site_name='  site　a ')
        self.assertFalse(created_again)
        self.assertEqual(again.id, first.id)
        self.assertEqual(self._count(Report), 1)

        events = report_events.pending_events(self.db)
        self.assertEqual([event.name for event in events], [report_events.REPORT_CREATED])

    def test_find_or_create_requires_date_and_site_name(self) -> None:
        with self.assertRaises(ValidationError):
            find_or_create_report(self.db, report_date=None, site_name='Site A')
        with self.assertRaises(ValidationError):
            find_or_create_report(self.db, report_date=REPORT_DATE, site_name='   ')

    def test_find_or_create_fills_site_code_from_site_master(self) -> None:
        upsert_site(
            self.db,
            year=2024,
            month=6,
            site_code='S-100',
            site_name='Site A',
            location='Minato-ku',
            site_date=REPORT_DATE,
        )
        report = self._create()
        self.assertEqual(report.site_code, 'S-100')
        self.assertEqual(report.location, 'Minato-ku')
        self.assertIsNotNone(report.site_id)

    def test_find_or_create_falls_back_to_generated_site_code(self) -> None:
        report = self._create('Unlisted Venue')
        self.assertEqual(report.site_code, '202406_Unlisted V')

    def test_concurrent_create_returns_the_first_callers_row(self) -> None:
        winner = self._create()
        real_find = report_service._find_existing
        calls = []

        def stale_then_real(*args, **kwargs):
            calls.append(1)
            if len(calls) == 1:
                return None
            return real_find(*args, **kwargs)

        with self.database.Session() as late:
            with patch('app.services.report_service._find_existing', side_effect=stale_then_real):
                report, created = find_or_create_report(late, report_date=REPORT_DATE, site_name='Site A')
            self.assertFalse(created)
            self.assertEqual(report.id, winner.id)
            self.assertEqual(report_events.pending_events(late), [])
            late.commit()

        self.assertEqual(self._count(Report), 1)

    def test_disjoint_updates_both_survive(self) -> None:
        report = self._create()
        with self.database.Session() as chief, self.database.Session() as sales:
            update_report(chief, report_id=report.id, fields={'chief_report_content': 'All good'}, actor='chief-1')
            chief.commit()
            update_report(sales, report_id=report.id, fields={'sales_comment': 'Invoice sent'}, actor='sales-1')
            sales.commit()

        self.db.expire_all()
        stored = get_report(self.db, report.id)
        self.assertEqual(stored.chief_report_content, 'All good')
        self.assertEqual(stored.sales_comment, 'Invoice sent')
        self.assertEqual(stored.updated_by, 'sales-1')

    def test_update_ignores_unknown_fields(self) -> None:
        report = self._create()
        update_report(
            self.db,
            report_id=report.id,
            fields={'chief_name': 'Tanaka', 'status': 'completed', 'favourite_colour': 'blue'},
            actor=None,
        )
        self.db.commit()
        self.assertEqual(report.chief_name, 'Tanaka')
        self.assertEqual(report.status, ReportStatus.DRAFT)

    def test_update_rejects_blank_site_name(self) -> None:
        report = self._create()
        with self.assertRaises(ValidationError):
            update_report(self.db, report_id=report.id, fields={'site_name': '  '}, actor=None)
        self.assertEqual(report.site_name, 'Site A')

    def test_update_rejects_unknown_site_id(self) -> None:
        report = self._create('Unlisted Venue')
        with self.assertRaisesRegex(ValidationError, 'site_id'):
            update_report(self.db, report_id=report.id, fields={'site_id': 999, 'chief_name': 'Tanaka'}, actor=None)
        self.assertIsNone(report.site_id)
        self.assertIsNone(report.chief_name)

        site = upsert_site(self.db, year=2024, month=6, site_code='S-100', site_name='Unlisted Venue')
        update_report(self.db, report_id=report.id, fields={'site_id': site.id}, actor=None)
        self.db.commit()
        self.assertEqual(report.site_id, site.id)

    def test_update_missing_report_raises_not_found(self) -> None:
        with self.assertRaises(NotFoundError):
            update_report(self.db, report_id=999, fields={'chief_name': 'x'}, actor=None)

    def test_staff_entry_upsert_keys_on_exact_name(self) -> None:
        report = self._create()
        first = upsert_staff_entry(
            self.db,
            report_id=report.id,
            staff_name='Sato',
            fields={'report_content': 'Setup', 'is_driving': True},
        )
        again = upsert_staff_entry(self.db, report_id=report.id, staff_name='Sato', fields={'is_laundry': True})
        self.assertEqual(first.id, again.id)
        self.assertTrue(again.is_driving)
        self.assertTrue(again.is_laundry)
        self.assertEqual(again.report_content, 'Setup')

        other = upsert_staff_entry(self.db, report_id=report.id, staff_name='sato', fields={})
        self.assertNotEqual(other.id, first.id)
        self.db.commit()
        self.assertEqual(self._count(ReportStaffEntry), 2)

    def test_times_upsert_keeps_one_row(self) -> None:
        report = self._create()
        upsert_times(self.db, report_id=report.id, times={'meeting_time': time(8, 0)})
        upsert_times(self.db, report_id=report.id, times={'finish_time': time(17, 30)})
        self.db.commit()

        self.assertEqual(self._count(ReportTime), 1)
        detail = get_report_detail(self.db, report.id)
        self.assertEqual(detail['times']['meeting_time'], '08:00:00')
        self.assertEqual(detail['times']['finish_time'], '17:30:00')
        self.assertIsNone(detail['times']['arrival_time'])

    def test_delete_cascades_to_all_children(self) -> None:
        report = self._create()
        upsert_times(self.db, report_id=report.id, times={'meeting_time': time(8, 0)})
        upsert_staff_entry(self.db, report_id=report.id, staff_name='Sato', fields={'report_content': 'x'})
        transition(self.db, report_id=report.id, new_status='returned_by_sales', reason='Fix totals')
        add_photo(self.db, report_id=report.id, file_name='a.jpg')
        self.db.commit()

        file_names = delete_report(self.db, report_id=report.id, actor='admin')
        self.db.commit()

        self.assertEqual(file_names, ['a.jpg'])
        for model in (Report, ReportTime, ReportStaffEntry, ReportComment, ReportPhoto):
            self.assertEqual(self._count(model), 0, model.__name__)
        with self.assertRaises(NotFoundError):
            get_report(self.db, report.id)

    def test_list_scopes_by_role(self) -> None:
        draft = self._create('Site A', created_by='sato')
        in_sales = self._create('Site B', created_by='suzuki')
        transition(self.db, report_id=in_sales.id, new_status='chief_submitted_to_sales')
        self.db.commit()

        sales_ids = [r.id for r in list_reports(self.db, ReportFilter(role=Role.SALES))]
        self.assertEqual(sales_ids, [in_sales.id])

        staff_ids = [r.id for r in list_reports(self.db, ReportFilter(role=Role.STAFF, staff_name='sato'))]
        self.assertEqual(staff_ids, [draft.id])

        chief_ids = {r.id for r in list_reports(self.db, ReportFilter(role=Role.CHIEF))}
        self.assertEqual(chief_ids, {draft.id, in_sales.id})

        by_name = list_reports(self.db, ReportFilter(site_name='B'))
        self.assertEqual([r.id for r in by_name], [in_sales.id])


if __name__ == '__main__':
    unittest.main()
