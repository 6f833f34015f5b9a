"""
Celery worker with embedded beat for the daily billing jobs.

    python run_celery.py

Production deployments run the worker and ``celery beat`` as separate
processes; the web app is served by gunicorn (see gunicorn.conf.py).
"""
import os
from propertyhub import create_app, celery

# Binds the Flask app context to every task and loads the beat schedule
app = create_app()


def start_worker():
    argv = [
        "worker",
        "--beat",
        f"--loglevel={os.environ.get('CELERY_LOG_LEVEL', 'INFO')}",
        f"--concurrency={os.environ.get('CELERY_CONCURRENCY', 2)}",
    ]
    if os.environ.get("CELERY_SCHEDULE_FILE"):
        argv.append(f"--schedule={os.environ['CELERY_SCHEDULE_FILE']}")
    celery.worker_main(argv=argv)


if __name__ == "__main__":
    start_worker()
