from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

# fixed policy: every origin, no per-request negotiation, preflights never rejected
CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type, Authorization",
}


class CORSHeadersMiddleware(BaseHTTPMiddleware):
    """Stamp the CORS headers on every response, errors and streams included.

    OPTIONS requests are left to the route, which answers 200 with no body.
    """

    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        for name, value in CORS_HEADERS.items():
            response.headers[name] = value
        return response
