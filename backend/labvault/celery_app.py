from celery import Celery

from labvault.config import settings

celery = Celery(
    "labvault",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
)

celery.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    beat_schedule={
        "recalculate-capacity-snapshots": {
            "task": "labvault.tasks.storage.recalculate_capacity_snapshots",
            "schedule": settings.CAPACITY_RECALC_INTERVAL_MINUTES * 60,
        },
    },
)

celery.autodiscover_tasks(["labvault.tasks"], related_name="storage")
