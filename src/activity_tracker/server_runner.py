"""Launch the local API with the tracker running alongside it."""

from __future__ import annotations

import logging
import threading
import time
import webbrowser
from pathlib import Path
from typing import Optional

import uvicorn

from .config import TrackerSettings
from .paths import get_data_dir
from .webapp import create_app

logger = logging.getLogger(__name__)

STARTUP_TIMEOUT = 10.0


def run_dashboard(
    *,
    host: str = "127.0.0.1",
    port: int = 8765,
    data_dir: Optional[Path] = None,
    settings: Optional[TrackerSettings] = None,
    open_browser: bool = False,
    log_level: str = "info",
) -> None:
    """Serve the API until interrupted; the tracker thread stops on shutdown."""
    resolved = Path(data_dir or get_data_dir())
    app = create_app(data_dir=resolved, settings=settings)
    if app.state.tracker.store.memory_only:
        logger.warning("Data directory %s is unusable; nothing will be saved.", resolved)
    else:
        logger.info("Serving tracker data from %s", resolved)

    logging.getLogger("uvicorn.error").setLevel(log_level.upper())
    server = uvicorn.Server(uvicorn.Config(app, host=host, port=port, log_level=log_level))

    if open_browser:
        threading.Thread(
            target=_open_docs_when_ready,
            args=(server, f"http://{host}:{port}/docs"),
            daemon=True,
        ).start()

    server.run()


def _open_docs_when_ready(server: uvicorn.Server, url: str) -> None:
    deadline = time.monotonic() + STARTUP_TIMEOUT
    while not server.started:
        if server.should_exit or time.monotonic() > deadline:
            logger.debug("Server did not come up; not opening %s", url)
            return
        time.sleep(0.1)
    try:
        webbrowser.open(url)
    except Exception:
        logger.exception("Failed to launch browser for %s", url)
