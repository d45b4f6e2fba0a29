from typing import Any, Callable, Dict

from celery.exceptions import SoftTimeLimitExceeded

from sitecraft.features.analysis.schemas.tasks import (
    FETCH_TASK_NAME,
    MODULE_TASK_NAME,
    FetchTask,
    ModuleTask,
    parse_task,
)
from sitecraft.features.analysis.services.outcome import TaskOutcome
from sitecraft.platform.celery_app import celery_app, get_worker_container
from sitecraft.platform.config import get_settings
from sitecraft.platform.exceptions import TaskPayloadError
from sitecraft.platform.logger import get_logger

logger = get_logger(__name__)

# Worker-level Celery options are fixed when the task is declared
settings = get_settings()


def retry_countdown(retries: int, backoff_seconds: int) -> int:
    return backoff_seconds * (2 ** retries)


def settle(
    task, outcome: TaskOutcome, give_up: Callable[[str], TaskOutcome], backoff_seconds: int
) -> Dict[str, Any]:
    """
    Translate a component outcome into ack or retry.

    Returning acknowledges the message; `retry` re-publishes it with backoff.
    Once retries are exhausted `give_up` records the failure so the analysis
    still reaches a terminal status.
    """
    if not outcome.should_retry:
        return outcome.as_result()

    retries = task.request.retries
    if retries >= task.max_retries:
        logger.error(f"{task.name} giving up after {retries} retries: {outcome.message}")
        return give_up(f"Gave up after {retries} retries: {outcome.message}").as_result()

    raise task.retry(exc=outcome.error, countdown=retry_countdown(retries, backoff_seconds))


def _reject(raw: Any, error: Exception) -> Dict[str, Any]:
    # Malformed messages are acknowledged, never retried
    logger.error(f"Rejected task payload {raw!r}: {error}")
    return {"outcome": "rejected", "message": str(error)}


@celery_app.task(
    bind=True,
    name=FETCH_TASK_NAME,
    max_retries=settings.TASK_MAX_RETRIES,
    default_retry_delay=settings.TASK_RETRY_BACKOFF_SECONDS,
)
def fetch_assets(self, payload: Dict[str, Any]) -> Dict[str, Any]:
    """Capture the analysis's assets once and fan out one task per module."""
    try:
        task = parse_task(payload)
    except TaskPayloadError as e:
        return _reject(payload, e)
    if not isinstance(task, FetchTask):
        return _reject(payload, TaskPayloadError(f"Expected a fetch task, got '{task.kind}'"))

    container = get_worker_container(self.app)
    logger.info(f"[{task.analysis_id}] Fetch task received (retry {self.request.retries})")

    outcome = container.fetcher.handle(task)
    return settle(
        self,
        outcome,
        lambda message: container.fetcher.fail(task.analysis_id, message),
        container.settings.TASK_RETRY_BACKOFF_SECONDS,
    )


@celery_app.task(
    bind=True,
    name=MODULE_TASK_NAME,
    max_retries=settings.TASK_MAX_RETRIES,
    default_retry_delay=settings.TASK_RETRY_BACKOFF_SECONDS,
    soft_time_limit=int(settings.ANALYZER_TIMEOUT_SECONDS) + 30,
)
def run_module_analysis(self, payload: Dict[str, Any]) -> Dict[str, Any]:
    """Run one analyzer module for one analysis through the shared JobLifecycle."""
    try:
        task = parse_task(payload)
    except TaskPayloadError as e:
        return _reject(payload, e)
    if not isinstance(task, ModuleTask):
        return _reject(payload, TaskPayloadError(f"Expected a module task, got '{task.kind}'"))

    container = get_worker_container(self.app)
    logger.info(f"[{task.analysis_id}] {task.module_key} task received (retry {self.request.retries})")

    try:
        outcome = container.lifecycle.handle(task)
    except SoftTimeLimitExceeded:
        message = f"{task.module_key} exceeded the task soft time limit"
        logger.error(f"[{task.analysis_id}] {message}")
        return container.lifecycle.fail_task(task, message).as_result()

    return settle(
        self,
        outcome,
        lambda message: container.lifecycle.fail_task(task, message),
        container.settings.TASK_RETRY_BACKOFF_SECONDS,
    )
