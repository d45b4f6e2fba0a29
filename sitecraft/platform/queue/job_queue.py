from typing import Protocol, Union

from celery import Celery
from kombu.exceptions import KombuError

from sitecraft.features.analysis.schemas.tasks import FetchTask, ModuleTask
from sitecraft.platform.exceptions import QueueError
from sitecraft.platform.logger import get_logger
from sitecraft.platform.utils.retry import RetryPolicy, run_with_retry

logger = get_logger(__name__)

Task = Union[FetchTask, ModuleTask]


class JobQueue(Protocol):
    def enqueue(self, queue_name: str, payload: Task) -> None: ...


class CeleryJobQueue:
    """
    Publishes task payloads to their Celery queue.

    Delivery is at-least-once: the app is configured with late acks, so a task
    whose worker dies is redelivered. Consumers must be idempotent.
    """

    def __init__(self, celery_app: Celery, retry_policy: RetryPolicy = RetryPolicy()):
        self.celery_app = celery_app
        self.retry_policy = retry_policy

    def enqueue(self, queue_name: str, payload: Task) -> None:
        def _send():
            self.celery_app.send_task(
                payload.task_name,
                kwargs={"payload": payload.model_dump()},
                queue=queue_name,
            )

        try:
            run_with_retry(
                _send,
                self.retry_policy,
                retry_on=(KombuError, ConnectionError),
                description=f"[{payload.analysis_id}] enqueue {payload.kind} task on {queue_name}",
            )
        except (KombuError, ConnectionError) as e:
            raise QueueError(
                f"Failed to enqueue {payload.kind} task on {queue_name}: {e}",
                context={"analysis_id": payload.analysis_id, "queue": queue_name},
            ) from e

        logger.info(f"[{payload.analysis_id}] Enqueued {payload.kind} task on {queue_name}")
