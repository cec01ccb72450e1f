"""Celery app factory."""

from celery import Celery

celery_app = Celery(
    "splits_network",
    include=[
        "workers.tasks.events",
        "workers.tasks.proposals",
        "workers.tasks.payouts",
        "workers.tasks.emails",
    ],
)
celery_app.config_from_object("workers.celery_config")
