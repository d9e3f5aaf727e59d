import multiprocessing
import os

wsgi_app = "scheduling_core.main:app"
bind = os.getenv("BIND", "127.0.0.1:8000")
# Record locks are per worker; cross-worker races fall back to version checks.
workers = int(os.getenv("WEB_CONCURRENCY", (multiprocessing.cpu_count() * 2) + 1))
worker_class = "uvicorn.workers.UvicornWorker"
timeout = 60
graceful_timeout = 30
keepalive = 5
loglevel = "info"
accesslog = "-"
errorlog = "-"
