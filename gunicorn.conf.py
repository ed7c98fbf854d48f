"""
Gunicorn configuration for the render gateway.

Runs the FastAPI application with Uvicorn workers.

Environment Variables:
    WORKERS: Number of worker processes (default: 1)
    WORKER_TIMEOUT: Worker timeout in seconds (default: 120)
    GRACEFUL_TIMEOUT: Graceful shutdown timeout in seconds (default: 30)
    KEEP_ALIVE: Keep-alive timeout in seconds (default: 5)
    PORT: Service port (default: 4300)
    LOG_LEVEL: Log level (default: INFO)

Notes:
    - Each worker runs its own ChromiumManager with a dedicated Chromium process
    - Each worker has its own content cache, so rendering submitted HTML
      requires the loopback request to reach the same worker. Keep WORKERS=1
      or set LOOPBACK_BASE_URL to a worker-local address when using that flow.
"""

import os
from typing import Any

# Server socket
bind = f"0.0.0.0:{os.getenv('PORT', '4300')}"

# Worker processes
workers = int(os.getenv("WORKERS", "1"))
worker_class = "uvicorn.workers.UvicornWorker"

timeout = int(os.getenv("WORKER_TIMEOUT", "120"))
graceful_timeout = int(os.getenv("GRACEFUL_TIMEOUT", "30"))
keepalive = int(os.getenv("KEEP_ALIVE", "5"))

# Logging
loglevel = os.getenv("LOG_LEVEL", "INFO").lower()
accesslog = "-"  # stdout
errorlog = "-"  # stderr
access_log_format = '%(h)s %(l)s %(u)s %(t)s "%(r)s" %(s)s %(b)s "%(f)s" "%(a)s" %(D)s'

proc_name = "render-gateway"

daemon = False
pidfile = None

# Each worker must own its browser and content cache
preload_app = False


def on_starting(server: Any) -> None:
    server.log.info("Starting Gunicorn with %d worker(s)", workers)


def when_ready(server: Any) -> None:
    server.log.info("Gunicorn is ready. Listening on: %s", bind)


def worker_int(worker: Any) -> None:
    worker.log.info("Worker %s: received SIGINT/SIGQUIT, shutting down", worker.pid)


def worker_abort(worker: Any) -> None:
    worker.log.warning("Worker %s: received SIGABRT, aborting", worker.pid)


def worker_exit(server: Any, worker: Any) -> None:
    server.log.info("Worker %s exited", worker.pid)
