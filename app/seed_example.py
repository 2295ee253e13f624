from datetime import date

from sqlalchemy import select

from app.db import SessionLocal, init_db
from app.models import Report, Site
from app.services.report_events import take_events
from app.services.report_service import find_or_create_report, upsert_staff_entry
from app.services.site_service import upsert_site

DEMO_SITES = [
    ('DEMO-001', 'Site A', 'Minato-ku'),
    ('DEMO-002', 'Site B', 'Shibuya-ku'),
    ('DEMO-003', 'Central Warehouse', 'Koto-ku'),
]


def seed(today: date | None = None) -> None:
    today = today or date.today()
    init_db()
    with SessionLocal() as db:
        for site_code, site_name, location in DEMO_SITES:
            upsert_site(
                db,
                year=today.year,
                month=today.month,
                site_code=site_code,
                site_name=site_name,
                location=location,
                site_date=today,
            )

        first_site = db.execute(select(Site).order_by(Site.id.asc())).scalars().first()
        existing = db.execute(select(Report.id).where(Report.report_date == today)).first()
        if first_site and not existing:
            report, _created = find_or_create_report(
                db,
                report_date=today,
                site_name=first_site.site_name,
                created_by='demo-staff',
            )
            upsert_staff_entry(
                db,
                report_id=report.id,
                staff_name='demo-staff',
                fields={'report_content': 'Unloading and setup', 'is_driving': True},
            )

        # No hub runs outside the API.
        take_events(db)
        db.commit()


if __name__ == '__main__':
    seed()
    print('Seed data inserted/verified.')
