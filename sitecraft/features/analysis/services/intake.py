from datetime import datetime, timezone
from typing import Iterable, List, Optional

from sitecraft.features.analysis.models import Analysis, AnalysisStatus, JobStatus
from sitecraft.features.analysis.schemas.tasks import FetchTask
from sitecraft.features.analysis.services.quota import QuotaPolicy
from sitecraft.platform.exceptions import QueueError, ValidationError
from sitecraft.platform.logger import get_logger
from sitecraft.platform.utils.url_validator import validate_url

logger = get_logger(__name__)


def normalize_module_keys(keys: Iterable[str]) -> List[str]:
    """Strip, lower-case and de-duplicate, keeping first-seen order."""
    seen: List[str] = []
    for key in keys:
        key = (key or "").strip().lower()
        if key and key not in seen:
            seen.append(key)
    return seen


class Intake:
    """Validates a request, records it and hands it to the fetch queue."""

    def __init__(self, status_store, job_queue, quota_policy: QuotaPolicy, default_modules: Iterable[str]):
        self._store = status_store
        self._queue = job_queue
        self._quota = quota_policy
        self.default_modules = list(default_modules)

    def submit(self, url: str, workspace_id: str, module_keys: Optional[Iterable[str]] = None) -> Analysis:
        is_valid, normalized_url, error = validate_url(url)
        if not is_valid:
            raise ValidationError(error or "Invalid URL", {"url": url})

        workspace_id = (workspace_id or "").strip()
        if not workspace_id:
            raise ValidationError("workspace_id is required")

        keys = normalize_module_keys(self.default_modules if module_keys is None else module_keys)
        if not keys:
            raise ValidationError("At least one analysis module is required")

        modules = {module.key: module for module in self._store.get_modules_by_keys(keys)}
        unknown = [key for key in keys if key not in modules or not modules[key].is_active]
        if unknown:
            raise ValidationError(
                f"Unknown or inactive module(s): {', '.join(unknown)}",
                {"modules": unknown},
            )

        self._quota.check(workspace_id)

        analysis = self._store.create_analysis_with_jobs(
            workspace_id, normalized_url, [modules[key] for key in keys]
        )

        task = FetchTask(analysis_id=analysis.id, asset_path=analysis.asset_path)
        try:
            self._queue.enqueue(task.queue_name, task)
        except QueueError as e:
            message = f"Failed to enqueue fetch task: {e.message}"
            self._store.update_analysis_if(
                analysis.id,
                [AnalysisStatus.pending],
                AnalysisStatus.failed,
                error_message=message,
                completed_at=datetime.now(timezone.utc),
            )
            self._store.fail_open_jobs(analysis.id, message, [JobStatus.pending])
            logger.error(f"[{analysis.id}] {message}")
            raise

        logger.info(f"[{analysis.id}] Accepted {normalized_url} for {workspace_id} with modules {keys}")
        return analysis
