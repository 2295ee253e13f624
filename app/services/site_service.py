from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.models import Site

# Unicode \s also matches the full-width space (U+3000).
WS_RE = re.compile(r'\s+')


def normalize_site_name(value: str | None) -> str:
    return WS_RE.sub('', value or '').lower()


def fallback_site_code(report_date: date, site_name: str) -> str:
    return f'{report_date.year}{report_date.month:02d}_{site_name.strip()[:10]}'


@dataclass(frozen=True)
class SiteMatch:
    site_id: int | None
    site_code: str
    location: str | None


def find_site(db: Session, *, report_date: date, site_name: str) -> Site | None:
    key = normalize_site_name(site_name)
    if not key:
        return None
    candidates = db.execute(
        select(Site)
        .where(
            Site.site_name_key == key,
            Site.year == report_date.year,
            Site.month == report_date.month,
        )
        .order_by(Site.id.asc())
    ).scalars().all()
    for site in candidates:
        if site.site_date == report_date:
            return site
    return candidates[0] if candidates else None


def resolve_site(
    db: Session,
    *,
    report_date: date,
    site_name: str,
    site_code: str | None = None,
    site_id: int | None = None,
    location: str | None = None,
) -> SiteMatch:
    """Fill in the site identity fields a caller did not supply."""
    site: Site | None = None
    if site_id is not None:
        site = db.get(Site, site_id)
    if site is None:
        site = find_site(db, report_date=report_date, site_name=site_name)

    if site is None:
        return SiteMatch(
            site_id=None,
            site_code=site_code or fallback_site_code(report_date, site_name),
            location=location,
        )
    return SiteMatch(
        site_id=site.id,
        site_code=site_code or site.site_code,
        location=location if location is not None else site.location,
    )


def upsert_site(
    db: Session,
    *,
    year: int,
    month: int,
    site_code: str,
    site_name: str,
    location: str | None = None,
    site_date: date | None = None,
) -> Site:
    site = db.execute(
        select(Site).where(Site.year == year, Site.month == month, Site.site_code == site_code)
    ).scalar_one_or_none()
    if site is None:
        site = Site(year=year, month=month, site_code=site_code, site_name=site_name)
        db.add(site)
    site.site_name = site_name
    site.site_name_key = normalize_site_name(site_name)
    site.location = location
    site.site_date = site_date
    db.flush()
    return site


def list_sites(
    db: Session,
    *,
    year: int | None = None,
    month: int | None = None,
    site_code: str | None = None,
    site_name: str | None = None,
    location: str | None = None,
) -> list[Site]:
    query = select(Site)
    if year is not None:
        query = query.where(Site.year == year)
    if month is not None:
        query = query.where(Site.month == month)
    if site_code:
        query = query.where(Site.site_code.contains(site_code, autoescape=True))
    if site_name:
        query = query.where(Site.site_name.contains(site_name, autoescape=True))
    if location:
        query = query.where(Site.location.contains(location, autoescape=True))
    return db.execute(query.order_by(Site.site_code.asc(), Site.id.asc())).scalars().all()


def serialize_site(site: Site) -> dict:
    return {
        'id': site.id,
        'year': site.year,
        'month': site.month,
        'site_code': site.site_code,
        'site_name': site.site_name,
        'location': site.location,
        'site_date': site.site_date.isoformat() if site.site_date else None,
    }
