"""Gunicorn configuration for host and node processes."""
import os
import sys

# Registry and stress engine live in process memory, so run one worker
# and serve concurrent requests from its threads.
bind = f"0.0.0.0:{os.environ.get('LOADTEST_PORT', '8080')}"
workers = 1
threads = int(os.environ.get("LOADTEST_THREADS", "8"))
timeout = 120
worker_class = "gthread"
preload_app = False


def post_worker_init(worker):
    """Called just after a worker has initialized the application."""
    app = worker.app.wsgi() if hasattr(worker.app, "wsgi") else None
    settings = app.config.get('settings') if app is not None else None
    if settings is None:
        print(f"[Worker {worker.pid}] WARNING: settings not found in app.config", file=sys.stderr, flush=True)
        return
    if settings.role == "host":
        nodes = app.config['node_registry'].list()
        print(f"[Worker {worker.pid}] Host ready with {len(nodes)} seeded nodes", file=sys.stderr, flush=True)
    else:
        print(f"[Worker {worker.pid}] Node ready", file=sys.stderr, flush=True)


def worker_exit(server, worker):
    """Stop any running stress workers before the worker process goes away."""
    app = worker.app.wsgi() if hasattr(worker.app, "wsgi") else None
    engine = app.config.get('stress_engine') if app is not None else None
    if engine is not None:
        engine.shutdown()
