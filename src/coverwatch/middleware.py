"""ASGI middleware that ties a collector to request handling."""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, MutableMapping, Optional

from .background import BackgroundReporter
from .collector import CoverageCollector
from .models import CollectorState

Scope = MutableMapping[str, Any]
Message = MutableMapping[str, Any]
Receive = Callable[[], Awaitable[Message]]
Send = Callable[[Message], Awaitable[None]]
ASGIApp = Callable[[Scope, Receive, Send], Awaitable[None]]


class CoverageMiddleware:
    """Wraps an ASGI app.

    The first HTTP request moves the collector into the runtime phase. When
    no background reporter is running, coverage is flushed after every
    request instead. The collector's error policy decides what happens to a
    failed flush; the response has already been sent by then.
    """

    def __init__(
        self,
        app: ASGIApp,
        collector: CoverageCollector,
        reporter: Optional[BackgroundReporter] = None,
    ) -> None:
        self.app = app
        self.collector = collector
        self.reporter = reporter

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        if self.collector.state is not CollectorState.RUNTIME:
            await asyncio.to_thread(self._enter_runtime)

        try:
            await self.app(scope, receive, send)
        finally:
            if self.reporter is None or not self.reporter.running:
                await asyncio.to_thread(self.collector.report_coverage)

    def _enter_runtime(self) -> None:
        self.collector.runtime()
        if self.reporter is not None:
            self.reporter.start()
