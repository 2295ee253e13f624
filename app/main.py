from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse

from app.config import settings
from app.db import init_db
from app.error_handlers import install_error_handlers
from app.logging import RequestIdMiddleware, setup_logging
from app.routers import assignments, masters, realtime, reports
from app.security.headers import install_security_headers
from app.services.assignment_resolver import AssignmentResolver
from app.services.realtime_hub import RealtimeHub
from app.services.source_factory import get_assignment_source


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    app.state.hub = RealtimeHub()
    app.state.resolver = AssignmentResolver(get_assignment_source())
    yield


def create_app() -> FastAPI:
    setup_logging()
    app = FastAPI(title='Site Report Workflow', lifespan=lifespan)
    install_security_headers(app)
    app.add_middleware(RequestIdMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origin_list,
        allow_methods=['*'],
        allow_headers=['*'],
    )
    install_error_handlers(app)

    app.include_router(reports.router)
    app.include_router(assignments.router)
    app.include_router(masters.router)
    app.include_router(realtime.router)

    @app.get('/health')
    def health() -> dict:
        return {'status': 'ok'}

    @app.get('/robots.txt', response_class=PlainTextResponse)
    def robots_txt() -> str:
        return 'User-agent: *\nDisallow: /\n'

    return app


app = create_app()
