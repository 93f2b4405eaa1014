import logging
import time
from contextvars import ContextVar

from sqlalchemy import event
from starlette.types import ASGIApp, Message, Receive, Scope, Send

logger = logging.getLogger("forum.access")

# Statements executed by the current request.
query_count_var: ContextVar[int] = ContextVar("query_count", default=0)


def install_query_counter(engine) -> None:
    """
    Count every SQL statement *engine* executes into ``query_count_var``,
    eager-load queries included.  Call once per engine.
    """

    @event.listens_for(engine.sync_engine, "before_cursor_execute")
    def _count_query(conn, cursor, statement, parameters, context, executemany):
        query_count_var.set(query_count_var.get() + 1)


class TimingMiddleware:
    """
    Per-request diagnostics for HTTP traffic.

    Adds ``X-Response-Time-Ms`` and ``X-Query-Count`` to every response and
    writes one access line to the ``forum.access`` logger with the method,
    path, status and both figures.  Written as plain ASGI: the handler runs
    in this task, so its writes to ``query_count_var`` are visible here.
    """

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        query_count_var.set(0)
        start = time.perf_counter()
        status = 500

        def elapsed_ms() -> float:
            return round((time.perf_counter() - start) * 1000, 2)

        async def send_with_timing(message: Message) -> None:
            nonlocal status
            if message["type"] == "http.response.start":
                status = message["status"]
                message["headers"] = [
                    *message.get("headers", []),
                    (b"x-response-time-ms", str(elapsed_ms()).encode()),
                    (b"x-query-count", str(query_count_var.get()).encode()),
                ]
            await send(message)

        try:
            await self.app(scope, receive, send_with_timing)
        finally:
            logger.info(
                "%s %s -> %s in %sms (%s queries)",
                scope["method"],
                scope["path"],
                status,
                elapsed_ms(),
                query_count_var.get(),
                extra={"method": scope["method"], "path": scope["path"], "status": status},
            )
