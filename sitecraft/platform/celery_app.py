from typing import Iterable, Optional

from celery import Celery
from celery.signals import worker_process_init, worker_process_shutdown
from kombu import Queue

from sitecraft.features.analysis.schemas.tasks import FETCH_QUEUE, FETCH_TASK_NAME, module_queue
from sitecraft.platform.config import Settings, get_settings
from sitecraft.platform.logger import get_logger

logger = get_logger(__name__)


def create_celery_app(settings: Optional[Settings] = None, module_keys: Optional[Iterable[str]] = None) -> Celery:
    """
    Create and configure the Celery application.

    Queue Structure:
    - analysis.fetch: asset capture, one task per analysis
    - analysis.module.<key>: one queue per analyzer module, so each module
      gets its own worker pool and can be scaled independently

    Module tasks are published with an explicit queue by the Fetcher, so only
    the fetch task needs a static route.
    """
    settings = settings or get_settings()
    module_keys = list(module_keys or settings.DEFAULT_MODULES)

    celery_app = Celery(
        "sitecraft",
        broker=settings.CELERY_BROKER_URL,
        backend=settings.CELERY_RESULT_BACKEND,
    )

    celery_app.conf.update(
        task_serializer=settings.CELERY_TASK_SERIALIZER,
        result_serializer=settings.CELERY_RESULT_SERIALIZER,
        accept_content=[settings.CELERY_ACCEPT_CONTENT],
        timezone="UTC",
        enable_utc=True,
        task_track_started=settings.CELERY_TASK_TRACK_STARTED,
        task_time_limit=settings.CELERY_TASK_TIME_LIMIT,

        result_expires=3600,

        task_routes={
            FETCH_TASK_NAME: {"queue": FETCH_QUEUE},
        },
        task_queues=(
            Queue("default"),
            Queue(FETCH_QUEUE),
            *(Queue(module_queue(key)) for key in module_keys),
        ),
        task_default_queue="default",

        worker_prefetch_multiplier=1,

        # Redelivery on worker loss; handlers are idempotent
        task_acks_late=True,
        task_reject_on_worker_lost=True,

        broker_connection_timeout=settings.REDIS_SOCKET_TIMEOUT,
        broker_connection_retry_on_startup=True,
        redis_socket_timeout=settings.REDIS_SOCKET_TIMEOUT,
        redis_socket_connect_timeout=settings.REDIS_SOCKET_TIMEOUT,
    )

    celery_app.autodiscover_tasks(["sitecraft.features.analysis.workers"])

    return celery_app


celery_app = create_celery_app()


def get_worker_container(app: Celery):
    """The process's ServiceContainer; built on first use when the pool skipped worker_process_init."""
    container = getattr(app, "container", None)
    if container is None:
        from sitecraft.platform.container import build_container

        container = build_container(get_settings(), app)
        app.container = container
    return container


@worker_process_init.connect
def init_worker_container(**kwargs):
    from sitecraft.platform.container import build_container

    celery_app.container = build_container(get_settings(), celery_app)
    logger.info("Worker process container ready")


@worker_process_shutdown.connect
def close_worker_container(**kwargs):
    container = getattr(celery_app, "container", None)
    if container is not None:
        container.close()
