# haggle/middleware.py

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

# Extractors only read credentials off the request; resolving them happens in the auth dependency.
def _extract_bearer_token(request: Request) -> None:
    """Places a JWT Bearer token in request.state."""
    token = request.headers.get('Authorization')
    if token and token.startswith("Bearer "):
        setattr(request.state, "token", token.split(" ", 1)[1].strip())

class AuthenticationMiddleware(BaseHTTPMiddleware):
    AUTH_EXTRACTORS = [
        _extract_bearer_token,
    ]

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        # Reset state for every request
        setattr(request.state, "token", None)
        setattr(request.state, "auth", None)

        for extractor in self.AUTH_EXTRACTORS:
            extractor(request)

        response = await call_next(request)
        return response
