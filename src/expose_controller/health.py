# ABOUTME: Liveness listener for the expose controller
# ABOUTME: Answers every request with an empty 200 so supervisors see the process as alive

"""Bare HTTP liveness endpoint served by uvicorn on a background thread."""

from __future__ import annotations

import threading
import time

import structlog
import uvicorn
from fastapi import FastAPI, Response

logger = structlog.get_logger(__name__)

STARTUP_TIMEOUT_SECONDS = 10.0


def create_app() -> FastAPI:
    """FastAPI app whose only route matches every path."""
    app = FastAPI(docs_url=None, redoc_url=None, openapi_url=None)

    @app.api_route("/{path:path}", methods=["GET", "HEAD"], include_in_schema=False)
    async def liveness_check(path: str) -> Response:  # noqa: ARG001
        """Kubernetes liveness check"""
        return Response(status_code=200)

    return app


class HealthServer:
    """Runs the liveness listener on a daemon thread."""

    def __init__(self, port: int = 8080, host: str = "0.0.0.0") -> None:  # noqa: S104
        self._host = host
        self._port = port
        self._server: uvicorn.Server | None = None
        self._thread: threading.Thread | None = None

    @property
    def port(self) -> int:
        """Bound port; differs from the requested one when 0 was requested."""
        if self._server is None or not self._server.servers:
            return self._port
        return self._server.servers[0].sockets[0].getsockname()[1]

    def start(self) -> None:
        config = uvicorn.Config(
            create_app(),
            host=self._host,
            port=self._port,
            access_log=False,
            log_config=None,
            lifespan="off",
        )
        self._server = uvicorn.Server(config)
        self._thread = threading.Thread(target=self._server.run, name="liveness", daemon=True)
        self._thread.start()

        deadline = time.monotonic() + STARTUP_TIMEOUT_SECONDS
        while not self._server.started:
            if not self._thread.is_alive() or time.monotonic() > deadline:
                raise RuntimeError(f"Liveness listener failed to start on {self._host}:{self._port}")
            time.sleep(0.01)
        logger.info("Liveness listener started", port=self.port)

    def stop(self) -> None:
        if self._server is None:
            return
        self._server.should_exit = True
        if self._thread is not None:
            self._thread.join(timeout=STARTUP_TIMEOUT_SECONDS)
        self._server = None
        self._thread = None
        logger.info("Liveness listener stopped")
