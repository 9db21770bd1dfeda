"""
Order Hub — Operator JWT Authentication Middleware
Admin routes need a Bearer token with is_admin=true: 401 when missing/invalid, 403 when not admin.
The admin SSE stream is guarded the same way as /admin.
Checkout, tracking and per-order streams stay public.
"""
from fastapi import Request, Response
from fastapi.responses import JSONResponse
from jose import JWTError
from starlette.middleware.base import BaseHTTPMiddleware

from orderhub.core.security import decode_token, is_admin

# Path prefixes that DO require an operator token
PROTECTED_PREFIXES = (
    "/admin",
    "/realtime/stats",
    "/realtime/stream/admin",
)


class AdminAuthMiddleware(BaseHTTPMiddleware):
    """
    Validates the JWT Bearer token on operator routes.
    Attaches decoded claims to request.state.user on success.
    """

    async def dispatch(self, request: Request, call_next) -> Response:
        if request.method == "OPTIONS":
            return await call_next(request)

        if not request.url.path.startswith(PROTECTED_PREFIXES):
            return await call_next(request)

        auth_header = request.headers.get("Authorization", "")
        if not auth_header.startswith("Bearer "):
            return JSONResponse(
                status_code=401,
                content={"detail": "Missing or invalid Authorization header. Expected: Bearer <token>"},
                headers={"WWW-Authenticate": "Bearer"},
            )

        token = auth_header.split(" ", 1)[1]
        try:
            claims = decode_token(token)
        except JWTError as exc:
            return JSONResponse(
                status_code=401,
                content={"detail": f"Invalid or expired JWT: {str(exc)}"},
                headers={"WWW-Authenticate": "Bearer"},
            )

        if not is_admin(claims):
            return JSONResponse(status_code=403, content={"detail": "Operator privileges required."})

        request.state.user = claims
        return await call_next(request)
