# gunicorn.conf.py

import multiprocessing
import os

# Entry point for the app factory
wsgi_app = "propertyhub:create_app()"

bind = f"0.0.0.0:{os.environ.get('PORT', 10000)}"

# Workers = CPU cores * 2 + 1
workers = int(os.environ.get("WEB_CONCURRENCY", multiprocessing.cpu_count() * 2 + 1))

# gevent workers: one greenlet per request, the demo gateway delay yields
worker_class = "gevent"

backlog = 2048

# Timeout (seconds) before worker restart
timeout = 120
graceful_timeout = 30

limit_request_line = 0
limit_request_fields = 32768
limit_request_field_size = 0

# Logging
accesslog = "-"
errorlog = "-"
loglevel = "info"

preload_app = True
