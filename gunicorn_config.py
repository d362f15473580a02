# Gunicorn configuration file for the scoreboard proxy
#
# Run with:
#   gunicorn -c gunicorn_config.py

import os

# Application
wsgi_app = "app:create_app()"

# Server socket
bind = f"0.0.0.0:{os.environ.get('PORT', '5050')}"
backlog = 2048

# Exactly one worker: each worker would start its own scheduler and poll the
# upstream feeds independently. Threads keep the on-demand point-table fetch
# from blocking the other endpoints.
workers = 1
worker_class = "gthread"
threads = int(os.environ.get("GUNICORN_THREADS", "4"))
timeout = 30
keepalive = 2

# Logging - stdout/stderr, collected by the process supervisor
accesslog = "-"
errorlog = "-"
loglevel = os.environ.get("LOG_LEVEL", "info").lower()
access_log_format = '%(h)s %(l)s %(u)s %(t)s "%(r)s" %(s)s %(b)s "%(f)s" "%(a)s"'

# Process naming
proc_name = "scoreboard_proxy"

# Server mechanics
daemon = False


def post_worker_init(worker):
    """Start background polling inside the (single) worker process."""
    from app import start_background_jobs

    start_background_jobs(worker.wsgi)
