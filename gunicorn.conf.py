"""Gunicorn configuration for K8s deployment.

Launch with::

    gunicorn query_router.main:app -c gunicorn.conf.py

- Single async worker per pod; concurrency comes from the event loop
- Worker recycling to bound slow memory growth
- Keep-alive matched to the K8s ingress (typically 60s)

With more than one worker, set ``rateLimitConfig.backend`` to ``redis`` so
the daily model quota is shared.
"""

import os

# --- Server ---
bind = os.environ.get("BIND", "0.0.0.0:8000")

# --- Workers ---
workers = int(os.environ.get("WORKERS", "1"))
worker_class = "uvicorn.workers.UvicornWorker"

# --- Timeouts ---
timeout = 180  # Kill worker if stuck > 3 min
graceful_timeout = 30  # Grace period on SIGTERM
keepalive = 65  # Match K8s ingress (usually 60s)

# --- Worker recycling ---
max_requests = 5000
max_requests_jitter = 500

# --- Logging ---
accesslog = "-"  # stdout
loglevel = os.environ.get("LOG_LEVEL", "info")
