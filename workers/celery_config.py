"""Celery configuration for background tasks and periodic jobs."""

from celery.schedules import crontab
from kombu import Exchange, Queue

from core.config import settings

# Broker configuration (Redis)
broker_url = settings.celery_broker_url
result_backend = settings.celery_result_backend

# Task routing and serialization
task_serializer = "json"
accept_content = ["json"]
result_serializer = "json"
timezone = "UTC"
enable_utc = True

# Task execution settings
task_track_started = True
task_time_limit = 10 * 60  # 10 minutes hard limit
task_soft_time_limit = 8 * 60  # 8 minutes soft limit
task_acks_late = True

# Worker settings
worker_prefetch_multiplier = 1
worker_max_tasks_per_child = 1000

# Queue configuration with routing
default_exchange = Exchange("splits_network", type="direct")
task_default_queue = "default"
task_default_exchange = "splits_network"
task_default_routing_key = "default"
task_queues = (
    Queue("default", exchange=default_exchange, routing_key="default"),
    Queue("events", exchange=default_exchange, routing_key="events"),
    Queue("payouts", exchange=default_exchange, routing_key="payouts"),
    Queue("notifications", exchange=default_exchange, routing_key="notifications"),
)

# Task routing
task_routes = {
    "workers.tasks.events.*": {"queue": "events"},
    "workers.tasks.payouts.*": {"queue": "payouts"},
    "workers.tasks.emails.*": {"queue": "notifications"},
}

# Periodic tasks
beat_schedule = {
    "relay-outbox": {
        "task": "workers.tasks.events.relay_outbox",
        "schedule": 10.0,
    },
    "expire-overdue-proposals": {
        "task": "workers.tasks.proposals.expire_overdue_proposals",
        "schedule": crontab(minute="*/5"),
    },
    "process-due-payouts": {
        "task": "workers.tasks.payouts.process_due_payouts",
        "schedule": crontab(minute=0),
    },
}

# Result backend settings
result_expires = 3600  # Results expire after 1 hour
