from __future__ import annotations

import tempfile
import unittest
from datetime import date, datetime, timedelta, timezone
from pathlib import Path
from unittest.mock import patch

from sqlalchemy import select

from app.cleanup_photos import cleanup
from app.models import Report, ReportPhoto, ReportStaffEntry, Site
from app.seed_example import seed
from app.services.photo_service import add_photo
from app.services.report_service import find_or_create_report
from app.services.sheet_assignment_source import SheetCsvAssignmentSource
from app.sync_sheet_sites import site_code_for, sync_sites
from tests.db_support import TempDatabase

SHEET = '\n'.join(
    [
        'Date,Site,Area,Staff',
        '2024/6/3,Site A,Minato,Sato',
        '2024/6/4,Site A,Minato,Sato',
        '2024/6/5,Tokyo Dome,Bunkyo,Suzuki',
        '2024/7/1,Site A,Minato,Tanaka',
    ]
)


class SyncSheetSitesTests(unittest.TestCase):
    def setUp(self) -> None:
        self.database = TempDatabase()

    def tearDown(self) -> None:
        self.database.close()

    def test_sync_upserts_one_site_per_code_for_the_month(self) -> None:
        source = SheetCsvAssignmentSource(url='https://example.invalid/sheet.csv', job_column='')
        with patch.object(SheetCsvAssignmentSource, '_download', return_value=SHEET), patch(
            'app.sync_sheet_sites.SessionLocal', self.database.Session
        ):
            count = sync_sites(year=2024, month=6, source=source)
            sync_sites(year=2024, month=6, source=source)

        self.assertEqual(count, 3)
        with self.database.Session() as db:
            sites = db.execute(select(Site).order_by(Site.site_code)).scalars().all()
        self.assertEqual([s.site_code for s in sites], ['202406_Site A', '202406_Tokyo Dome'])
        self.assertEqual(sites[0].site_name_key, 'sitea')
        self.assertEqual(sites[0].site_date, date(2024, 6, 4))

    def test_site_code_for(self) -> None:
        self.assertEqual(site_code_for(2024, 6, ' A very long site name '), '202406_A very lon')


class CleanupPhotosTests(unittest.TestCase):
    def setUp(self) -> None:
        self.database = TempDatabase()
        self.photo_dir = tempfile.TemporaryDirectory()
        with self.database.Session() as db:
            report, _ = find_or_create_report(db, report_date=date(2024, 6, 3), site_name='Site A')
            past = datetime.now(tz=timezone.utc) - timedelta(days=1)
            add_photo(db, report_id=report.id, file_name='old.jpg', expires_at=past)
            add_photo(db, report_id=report.id, file_name='new.jpg')
            db.commit()
        for name in ('old.jpg', 'new.jpg'):
            (Path(self.photo_dir.name) / name).write_bytes(b'jpg')

    def tearDown(self) -> None:
        self.photo_dir.cleanup()
        self.database.close()

    def _remaining_rows(self) -> list[str]:
        with self.database.Session() as db:
            return list(db.execute(select(ReportPhoto.file_name)).scalars().all())

    def test_dry_run_changes_nothing(self) -> None:
        with patch('app.cleanup_photos.SessionLocal', self.database.Session):
            self.assertEqual(cleanup(photo_dir=self.photo_dir.name, dry_run=True), (1, 0))
        self.assertEqual(sorted(self._remaining_rows()), ['new.jpg', 'old.jpg'])

    def test_cleanup_removes_expired_rows_and_files(self) -> None:
        with patch('app.cleanup_photos.SessionLocal', self.database.Session):
            self.assertEqual(cleanup(photo_dir=self.photo_dir.name), (1, 1))
        self.assertEqual(self._remaining_rows(), ['new.jpg'])
        self.assertFalse((Path(self.photo_dir.name) / 'old.jpg').exists())
        self.assertTrue((Path(self.photo_dir.name) / 'new.jpg').exists())


class SeedExampleTests(unittest.TestCase):
    def setUp(self) -> None:
        self.database = TempDatabase()

    def tearDown(self) -> None:
        self.database.close()

    def test_seed_is_idempotent(self) -> None:
        with patch('app.seed_example.SessionLocal', self.database.Session), patch('app.seed_example.init_db'):
            seed(date(2024, 6, 3))
            seed(date(2024, 6, 3))

        with self.database.Session() as db:
            self.assertEqual(len(db.execute(select(Site)).scalars().all()), 3)
            reports = db.execute(select(Report)).scalars().all()
            self.assertEqual([r.site_name for r in reports], ['Site A'])
            self.assertEqual(reports[0].site_code, 'DEMO-001')
            entries = db.execute(select(ReportStaffEntry)).scalars().all()
            self.assertEqual([(e.staff_name, e.is_driving) for e in entries], [('demo-staff', True)])


if __name__ == '__main__':
    unittest.main()
