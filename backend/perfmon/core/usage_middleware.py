"""
Usage tracking middleware: logs tenant-scoped API requests for performance analytics.
"""

import time
import logging
from typing import Optional

from starlette.background import BackgroundTask, BackgroundTasks
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import PlainTextResponse, Response

from perfmon.core.config import settings
from perfmon.core.tenancy import TenantContext, resolve_tenant_context
from perfmon.services.performance import RequestMetrics

logger = logging.getLogger("perfmon.usage")


def _content_length(value: Optional[str]) -> Optional[int]:
    if value is None:
        return None
    try:
        return int(value)
    except ValueError:
        return None


def _write_usage(ctx: TenantContext, metrics: RequestMetrics) -> None:
    """Persist one usage row in a fresh session. Runs off the response path."""
    try:
        # Import here to avoid circular imports
        from perfmon.core.database import SessionLocal
        from perfmon.services.performance import log_usage

        db = SessionLocal()
        try:
            log_usage(
                db, ctx.tenant_id, metrics,
                user_id=ctx.user_id, company_id=ctx.company_id, api_key_id=ctx.api_key_id,
            )
        finally:
            db.close()
    except Exception as exc:
        logger.warning("Usage logging failed: %s", exc)


class UsageTrackingMiddleware(BaseHTTPMiddleware):
    """Time every tracked API request and log it once the response is sent."""

    def _is_tracked(self, path: str) -> bool:
        if not path.startswith(settings.usage_tracking_prefix):
            return False
        return path not in settings.usage_tracking_exclude_list

    async def dispatch(self, request: Request, call_next) -> Response:
        path = request.url.path
        if not self._is_tracked(path):
            return await call_next(request)

        start = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception:
            elapsed_ms = (time.perf_counter() - start) * 1000
            logger.exception("Unhandled error on %s %s", request.method, path)
            response = PlainTextResponse("Internal Server Error", status_code=500)
            ctx = resolve_tenant_context(request)
            if ctx.tenant_id:
                response.background = BackgroundTask(
                    _write_usage, ctx, self._metrics(request, 500, elapsed_ms, None),
                )
            return response
        elapsed_ms = (time.perf_counter() - start) * 1000

        try:
            ctx = resolve_tenant_context(request)
            if ctx.tenant_id:
                metrics = self._metrics(
                    request, response.status_code, elapsed_ms,
                    _content_length(response.headers.get("content-length")),
                )
                self._schedule(response, BackgroundTask(_write_usage, ctx, metrics))
        except Exception as exc:
            logger.warning("Usage tracking skipped for %s: %s", path, exc)

        return response

    @staticmethod
    def _metrics(
        request: Request,
        status_code: int,
        elapsed_ms: float,
        response_size: Optional[int],
    ) -> RequestMetrics:
        return RequestMetrics(
            response_time_ms=round(elapsed_ms, 2),
            status_code=status_code,
            endpoint=request.url.path,
            method=request.method,
            request_size=_content_length(request.headers.get("content-length")) or 0,
            response_size=response_size,
            user_agent=request.headers.get("user-agent"),
            ip_address=request.client.host if request.client else None,
        )

    @staticmethod
    def _schedule(response: Response, task: BackgroundTask) -> None:
        """Run task after the response body is sent, keeping any existing background work."""
        if response.background is None:
            response.background = task
            return
        tasks = BackgroundTasks()
        tasks.add_task(response.background)
        tasks.add_task(task.func, *task.args, **task.kwargs)
        response.background = tasks
