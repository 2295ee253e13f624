from fastapi import Request
from starlette.requests import HTTPConnection

from app.services.assignment_resolver import AssignmentResolver
from app.services.realtime_hub import RealtimeHub


def get_hub(conn: HTTPConnection) -> RealtimeHub:
    return conn.app.state.hub


def get_resolver(request: Request) -> AssignmentResolver:
    return request.app.state.resolver


def actor_from(request: Request, explicit: str | None) -> str | None:
    # Identity is self-declared; there is no authentication behind it.
    if explicit and explicit.strip():
        return explicit.strip()
    header = request.headers.get('x-actor')
    return header.strip() if header and header.strip() else None
