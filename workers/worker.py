"""Worker script to run Celery workers."""

from core.config import settings
from core.middleware.logging import setup_logging
from workers.celery_app import celery_app

if __name__ == "__main__":
    setup_logging(log_level=settings.log_level, json_logs=settings.json_logs)

    # Start worker with beat embedded and every queue
    celery_app.worker_main(
        argv=[
            "worker",
            "--beat",
            "--loglevel=info",
            "--concurrency=4",
            "-Q",
            "default,events,payouts,notifications",
        ]
    )
