from fastapi import FastAPI, Request
from starlette.responses import Response

ROBOTS_HEADER = 'noindex, nofollow, noarchive'

API_PREFIX = '/api/'


def install_security_headers(app: FastAPI) -> None:
    @app.middleware('http')
    async def add_security_headers(request: Request, call_next):
        response: Response = await call_next(request)
        response.headers['X-Robots-Tag'] = ROBOTS_HEADER
        response.headers['X-Content-Type-Options'] = 'nosniff'
        # Report payloads change on every transition; clients must refetch.
        if request.url.path.startswith(API_PREFIX):
            response.headers['Cache-Control'] = 'no-store'
        return response
