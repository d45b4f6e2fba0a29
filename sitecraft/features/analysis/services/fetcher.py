import time
from typing import Callable, List

from sitecraft.features.analysis.models import AnalysisStatus, JobStatus
from sitecraft.features.analysis.schemas.tasks import FetchTask, ModuleTask
from sitecraft.features.analysis.services.asset_bundle import persist_assets
from sitecraft.features.analysis.services.capture_service import AssetCapturer
from sitecraft.features.analysis.services.completion_aggregator import CompletionAggregator
from sitecraft.features.analysis.services.outcome import TaskOutcome
from sitecraft.platform.exceptions import FetchFailure, PersistenceError, QueueError
from sitecraft.platform.logger import get_logger
from sitecraft.platform.utils.retry import RetryPolicy, run_with_retry

logger = get_logger(__name__)


class Fetcher:
    """
    Captures an analysis's assets once and fans out one module task per job.

    A terminal capture failure fails every open job and the analysis itself;
    no module task is enqueued in that case. A redelivery that finds the
    analysis already `analyzing` re-enqueues the jobs still `pending`.
    """

    def __init__(
        self,
        status_store,
        asset_store,
        job_queue,
        capturer: AssetCapturer,
        aggregator: CompletionAggregator,
        retry_policy: RetryPolicy,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._store = status_store
        self._assets = asset_store
        self._queue = job_queue
        self._capturer = capturer
        self._aggregator = aggregator
        self._retry_policy = retry_policy
        self._sleep = sleep

    def handle(self, task: FetchTask) -> TaskOutcome:
        try:
            return self._handle(task)
        except (PersistenceError, QueueError) as e:
            logger.warning(f"[{task.analysis_id}] Fetch hit a transient error: {e}")
            return TaskOutcome.retryable(e.message, error=e)

    def _handle(self, task: FetchTask) -> TaskOutcome:
        analysis_id = task.analysis_id
        analysis = self._store.get_analysis(analysis_id)
        if analysis is None:
            logger.error(f"[{analysis_id}] Fetch task for unknown analysis")
            return TaskOutcome.terminal("Analysis not found")

        # fetching is accepted so a redelivery after a worker crash re-runs the capture
        if not self._store.update_analysis_if(
            analysis_id, [AnalysisStatus.pending, AnalysisStatus.fetching], AnalysisStatus.fetching
        ):
            current = self._store.get_analysis(analysis_id) or analysis
            if current.status is AnalysisStatus.analyzing:
                # An earlier delivery got past capture; finish its fan-out. Module tasks tolerate duplicates.
                logger.info(f"[{analysis_id}] Fetch redelivered after capture, resuming fan-out")
                enqueued = self._fan_out(task)
                return TaskOutcome.ok(f"Resumed fan-out, enqueued {len(enqueued)} module task(s)", modules=enqueued)
            logger.info(f"[{analysis_id}] Duplicate fetch delivery (analysis is {current.status.value})")
            return TaskOutcome.skipped("Duplicate delivery", status=current.status.value)

        logger.info(f"[{analysis_id}] Capturing {analysis.target_url}")
        try:
            captured = run_with_retry(
                lambda: self._capturer.capture(analysis.target_url),
                self._retry_policy,
                retry_on=(FetchFailure,),
                description=f"[{analysis_id}] Capture of {analysis.target_url}",
                sleep=self._sleep,
            )
        except FetchFailure as e:
            return self.fail(analysis_id, e.message)
        except Exception as e:
            logger.exception(f"[{analysis_id}] Capturer raised unexpectedly")
            return self.fail(analysis_id, f"Capture error: {type(e).__name__}: {e}")

        persist_assets(self._assets, task.asset_path, captured)

        if not self._store.update_analysis_if(analysis_id, [AnalysisStatus.fetching], AnalysisStatus.analyzing):
            # Cancelled (or otherwise finalized) while the capture was running
            logger.info(f"[{analysis_id}] Analysis left 'fetching' during capture; not fanning out")
            return TaskOutcome.skipped("Analysis no longer fetching")

        enqueued = self._fan_out(task)
        return TaskOutcome.ok(f"Enqueued {len(enqueued)} module task(s)", modules=enqueued)

    def _fan_out(self, task: FetchTask) -> List[str]:
        analysis_id = task.analysis_id
        enqueued: List[str] = []
        unqueued = 0
        for job in self._store.list_jobs(analysis_id):
            if job.status is not JobStatus.pending:
                continue
            module_task = ModuleTask(
                analysis_id=analysis_id,
                asset_path=task.asset_path,
                module_id=job.module_id,
                module_key=job.module.key,
            )
            try:
                self._queue.enqueue(module_task.queue_name, module_task)
            except QueueError as e:
                logger.error(f"[{analysis_id}] Could not enqueue {job.module.key}: {e}")
                if self._store.fail_job(job.id, f"Failed to enqueue module task: {e.message}", [JobStatus.pending]):
                    unqueued += 1
                continue
            enqueued.append(job.module.key)

        if unqueued:
            self._aggregator.check(analysis_id)
        logger.info(f"[{analysis_id}] Fanned out to {', '.join(enqueued) or 'no modules'}")
        return enqueued

    def fail(self, analysis_id: str, error_message: str) -> TaskOutcome:
        """Fetch gave up: fail every open job, then the analysis."""
        message = f"Asset fetch failed: {error_message}"
        failed = self._store.fail_open_jobs(analysis_id, message)
        logger.error(f"[{analysis_id}] {message} ({failed} job(s) failed)")
        self._aggregator.finalize_fetch_failure(analysis_id, message)
        return TaskOutcome.terminal(message)
