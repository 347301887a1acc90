import os


def _as_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    try:
        return int(raw) if raw is not None else int(default)
    except (TypeError, ValueError):
        return int(default)


wsgi_app = os.getenv("GUNICORN_WSGI_APP", "ketus:create_app()")

# Chat transcripts live in process memory, so a browser session must keep
# hitting the same worker. Scale with threads rather than workers.
workers = max(1, _as_int("GUNICORN_WORKERS", 1))
threads = max(1, min(_as_int("GUNICORN_THREADS", 4), 8))
worker_class = os.getenv("GUNICORN_WORKER_CLASS", "gthread")

# The coach reply can take a while; keep above OPENAI_TIMEOUT_SECONDS.
timeout = _as_int("GUNICORN_TIMEOUT", 90)
graceful_timeout = _as_int("GUNICORN_GRACEFUL_TIMEOUT", 30)
keepalive = _as_int("GUNICORN_KEEPALIVE", 5)

bind = os.getenv("GUNICORN_BIND", f"0.0.0.0:{os.getenv('PORT', '8000')}")

# Stream logs to platform collector.
accesslog = "-"
errorlog = "-"
loglevel = os.getenv("GUNICORN_LOG_LEVEL", "info")
