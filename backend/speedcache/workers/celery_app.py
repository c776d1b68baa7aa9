from celery import Celery

from speedcache.config import settings

celery_app = Celery(
    "speedcache",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    task_routes={
        "speedcache.workers.report_worker.*": {"queue": "reports"},
        "speedcache.workers.recovery_worker.*": {"queue": "maintenance"},
    },
    # Celery Beat schedule
    beat_schedule={
        "recover-stuck-reports": {
            "task": "speedcache.workers.recovery_worker.recover_stuck_reports",
            "schedule": settings.STUCK_SCAN_INTERVAL_SECONDS,
        },
        "delete-old-reports-daily": {
            "task": "speedcache.workers.recovery_worker.delete_old_reports",
            "schedule": 24 * 60 * 60.0,
        },
    },
)

# Explicitly include tasks
celery_app.conf.include = [
    "speedcache.workers.report_worker",
    "speedcache.workers.recovery_worker",
]
