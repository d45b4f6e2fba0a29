"""
Job Lifecycle

The single per-job state machine shared by every analyzer module:

    pending -> running -> completed | failed

Modules only supply `analyze(assets)`. Loading assets, the timeout, rule
resolution, scoring, the cancellation re-check, the conditional completion
write and the aggregator call all happen here, so every module behaves the
same under redelivery.
"""
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import List, Optional

from pydantic import ValidationError as PydanticValidationError

from sitecraft.features.analysis.models import AnalysisStatus
from sitecraft.features.analysis.schemas.finding import FindingDraft
from sitecraft.features.analysis.schemas.tasks import ModuleTask
from sitecraft.features.analysis.services.analyzers.base import Analyzer, AnalyzerRegistry
from sitecraft.features.analysis.services.asset_bundle import load_bundle
from sitecraft.features.analysis.services.completion_aggregator import CompletionAggregator
from sitecraft.features.analysis.services.outcome import TaskOutcome
from sitecraft.features.analysis.services.rule_catalog import RuleCatalog
from sitecraft.features.analysis.services.scoring import FindingScorer, SeverityWeightedScorer
from sitecraft.platform.exceptions import (
    AnalyzerFailure,
    AnalyzerTimeout,
    AssetNotFound,
    PersistenceError,
    QueueError,
)
from sitecraft.platform.logger import get_logger

logger = get_logger(__name__)

CANCELLED_MESSAGE = "Analysis cancelled"


class JobLifecycle:
    def __init__(
        self,
        status_store,
        asset_store,
        rule_catalog: RuleCatalog,
        aggregator: CompletionAggregator,
        analyzers: AnalyzerRegistry,
        timeout_seconds: float = 120.0,
        scorer: Optional[FindingScorer] = None,
    ):
        self._store = status_store
        self._assets = asset_store
        self._catalog = rule_catalog
        self._aggregator = aggregator
        self._analyzers = analyzers
        self.timeout_seconds = timeout_seconds
        self._scorer = scorer or SeverityWeightedScorer()

    def handle(self, task: ModuleTask) -> TaskOutcome:
        try:
            return self._handle(task)
        except (PersistenceError, QueueError) as e:
            logger.warning(f"[{task.analysis_id}] {task.module_key} hit a transient error: {e}")
            return TaskOutcome.retryable(e.message, error=e)

    def _handle(self, task: ModuleTask) -> TaskOutcome:
        analysis_id, module_key = task.analysis_id, task.module_key
        prefix = f"[{analysis_id}] {module_key}:"

        job = self._store.get_job(analysis_id, task.module_id)
        if job is None:
            logger.error(f"{prefix} no job row for module {task.module_id}")
            return TaskOutcome.terminal("Job not found")

        if job.status.is_terminal:
            logger.info(f"{prefix} duplicate delivery, job already {job.status.value}")
            # The original handler may have died between its job write and the aggregator call
            self._aggregator.check(analysis_id)
            return TaskOutcome.skipped("Duplicate delivery", status=job.status.value)

        if self._is_cancelled(analysis_id):
            return self.fail(task, job.id, CANCELLED_MESSAGE)

        analyzer = self._analyzers.get(module_key)
        if analyzer is None:
            return self.fail(task, job.id, f"No analyzer registered for module '{module_key}'")

        if not self._store.start_job(job.id):
            logger.info(f"{prefix} job left pending/running before start")
            return TaskOutcome.skipped("Job no longer open")
        logger.info(f"{prefix} job {job.id} running (attempt {job.attempts + 1})")

        try:
            assets = load_bundle(self._assets, task.asset_path)
            drafts = self._run_analyzer(analyzer, assets, module_key)
        except AssetNotFound as e:
            return self.fail(task, job.id, f"Assets unavailable: {e.message}")
        except AnalyzerFailure as e:
            return self.fail(task, job.id, e.message)

        findings, missed = self._catalog.resolve(drafts, context=f"{prefix} ")
        score = self._scorer.score([finding.severity for finding in findings])

        if self._is_cancelled(analysis_id):
            logger.info(f"{prefix} analysis cancelled while running, discarding {len(findings)} finding(s)")
            return self.fail(task, job.id, CANCELLED_MESSAGE)

        if not self._store.complete_job_with_findings(
            job.id, analysis_id, score, [finding.to_row() for finding in findings]
        ):
            logger.info(f"{prefix} job no longer running, results discarded")
            return TaskOutcome.skipped("Job no longer running")

        logger.info(
            f"{prefix} completed with score {score} ({len(findings)} finding(s), {len(missed)} unknown rule(s))"
        )
        aggregation = self._aggregator.check(analysis_id)
        return TaskOutcome.ok(
            "Module completed",
            score=score,
            findings=len(findings),
            aggregation=aggregation.value,
        )

    def fail(self, task: ModuleTask, job_id: str, error_message: str) -> TaskOutcome:
        """Fail the job (if still open) and let the aggregator look at the analysis."""
        if self._store.fail_job(job_id, error_message):
            logger.error(f"[{task.analysis_id}] {task.module_key}: job {job_id} failed: {error_message}")
        self._aggregator.check(task.analysis_id)
        return TaskOutcome.terminal(error_message)

    def fail_task(self, task: ModuleTask, error_message: str) -> TaskOutcome:
        job = self._store.get_job(task.analysis_id, task.module_id)
        if job is None:
            return TaskOutcome.terminal("Job not found")
        return self.fail(task, job.id, error_message)

    def _is_cancelled(self, analysis_id: str) -> bool:
        analysis = self._store.get_analysis(analysis_id)
        return analysis is not None and analysis.status is AnalysisStatus.cancelled

    def _run_analyzer(self, analyzer: Analyzer, assets, module_key: str) -> List[FindingDraft]:
        executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix=f"analyzer-{module_key}")
        future = executor.submit(analyzer.analyze, assets)
        try:
            raw = future.result(timeout=self.timeout_seconds)
        except FutureTimeoutError as e:
            raise AnalyzerTimeout(
                f"{module_key} analyzer timed out after {self.timeout_seconds:g}s",
                {"module": module_key},
            ) from e
        except AnalyzerFailure:
            raise
        except Exception as e:
            logger.exception(f"{module_key} analyzer raised")
            raise AnalyzerFailure(f"{module_key} analyzer failed: {e}", {"module": module_key}) from e
        finally:
            # Never join a stuck analyzer thread
            executor.shutdown(wait=False, cancel_futures=True)

        try:
            return [
                draft if isinstance(draft, FindingDraft) else FindingDraft.model_validate(draft)
                for draft in raw or []
            ]
        except PydanticValidationError as e:
            raise AnalyzerFailure(f"{module_key} analyzer returned malformed findings: {e}") from e
