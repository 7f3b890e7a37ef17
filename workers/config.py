# =============================================================================
# workers/config.py - Celery Worker Configuration
# =============================================================================
# Applied to the Celery app via app.config_from_object().
# =============================================================================

from app.config import settings


class CeleryConfig:
    """
    Celery configuration for notification workers.
    """

    # -------------------------------------------------------------------------
    # Broker (Redis)
    # -------------------------------------------------------------------------

    broker_url = settings.REDIS_URL
    result_backend = settings.REDIS_URL

    # -------------------------------------------------------------------------
    # Tasks
    # -------------------------------------------------------------------------

    # Ack after completion so a crashed worker's notification is redelivered
    task_acks_late = True
    worker_prefetch_multiplier = 4

    # Nobody polls notification results
    task_ignore_result = True
    result_expires = 600

    task_time_limit = 60
    task_soft_time_limit = 45

    task_serializer = "json"
    result_serializer = "json"
    accept_content = ["json"]

    # -------------------------------------------------------------------------
    # Routing
    # -------------------------------------------------------------------------

    task_queues = {
        "default": {
            "exchange": "default",
            "routing_key": "default",
        },
        "notifications": {
            "exchange": "notifications",
            "routing_key": "notifications",
        },
    }

    task_routes = {
        "workers.tasks.dispatch_notification": {"queue": "notifications"},
    }

    task_default_queue = "default"

    # -------------------------------------------------------------------------
    # Retries
    # -------------------------------------------------------------------------

    task_annotations = {
        "workers.tasks.dispatch_notification": {
            "max_retries": 5,
            "default_retry_delay": 30,
        }
    }

    timezone = "UTC"
    enable_utc = True
