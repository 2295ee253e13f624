from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.db import get_db
from app.services.site_service import list_sites, serialize_site

router = APIRouter(prefix='/api/masters', tags=['masters'])


@router.get('/sites')
def list_sites_endpoint(
    year: int | None = None,
    month: int | None = Query(default=None, ge=1, le=12),
    site_code: str | None = None,
    site_name: str | None = None,
    location: str | None = None,
    db: Session = Depends(get_db),
):
    sites = list_sites(db, year=year, month=month, site_code=site_code, site_name=site_name, location=location)
    return [serialize_site(site) for site in sites]
