# =============================================================================
# workers/ - Celery Background Task Workers
# =============================================================================
# Celery configuration and task definitions for background notification
# delivery (used when NOTIFICATIONS_ASYNC is on).
#
# Components:
# - celery_app.py: Celery application configuration
# - tasks.py: Task definitions
# - config.py: Worker-specific settings
#
# Usage:
#   celery -A workers.celery_app worker -Q default,notifications --loglevel=info
# =============================================================================

from .celery_app import celery_app
from . import tasks

__all__ = [
    "celery_app",
    "tasks",
]
