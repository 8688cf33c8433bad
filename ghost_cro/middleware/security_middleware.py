"""Security middleware: anti-crawl headers and cache control."""
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response


class SecurityMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        response: Response = await call_next(request)

        # Merchant data; nothing here should be indexed
        response.headers["X-Robots-Tag"] = "noindex, nofollow"

        content_type = response.headers.get("content-type", "")
        if "application/json" in content_type:
            # API data: browser may store but must revalidate each time
            response.headers["Cache-Control"] = "private, no-cache"

        return response
