"""
Completion Aggregator

Decides, exactly once per analysis, that every module job has finished and
what the overall result is. It is called redundantly (after every terminal
job transition, from every worker) and holds no lock: the conditional
`analyzing -> <final>` UPDATE picks a single winner, and only the winner
fires the completion side effect.
"""
import enum
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Protocol

from sitecraft.features.analysis.models import AnalysisStatus, JobStatus
from sitecraft.features.analysis.services.scoring import combine_module_scores
from sitecraft.platform.logger import get_logger

logger = get_logger(__name__)


class CompletionNotifier(Protocol):
    def analysis_finished(self, analysis_id: str, status: AnalysisStatus, summary: Dict[str, Any]) -> None: ...


class AggregationOutcome(enum.Enum):
    pending = "pending"  # some job is still open
    aggregated = "aggregated"  # this caller finalized the analysis
    race_lost = "race_lost"  # someone else already did


@dataclass(frozen=True)
class AggregateResult:
    status: AnalysisStatus
    overall_score: Optional[int]
    module_scores: Dict[str, Optional[int]]
    total_findings: int
    critical_findings_count: int
    error_message: Optional[str] = None
    failed_modules: List[str] = field(default_factory=list)

    def summary(self, analysis_id: str) -> Dict[str, Any]:
        return {
            "analysis_id": analysis_id,
            "status": self.status.value,
            "overall_score": self.overall_score,
            "module_scores": self.module_scores,
            "total_findings": self.total_findings,
            "critical_findings_count": self.critical_findings_count,
            "failed_modules": self.failed_modules,
        }


def final_status(job_statuses: List[JobStatus]) -> AnalysisStatus:
    completed = sum(1 for status in job_statuses if status is JobStatus.completed)
    if completed == len(job_statuses):
        return AnalysisStatus.completed
    if completed == 0:
        return AnalysisStatus.failed
    return AnalysisStatus.partially_failed


class CompletionAggregator:
    def __init__(self, status_store, notifier: CompletionNotifier):
        self._store = status_store
        self._notifier = notifier

    def compute(self, analysis_id: str, jobs) -> AggregateResult:
        """Aggregate for a set of all-terminal jobs. Same jobs, same answer."""
        jobs = sorted(jobs, key=lambda job: job.module.key)
        status = final_status([job.status for job in jobs])

        module_scores = {
            job.module.key: (job.score if job.status is JobStatus.completed else None) for job in jobs
        }
        overall = combine_module_scores(
            job.score for job in jobs if job.status is JobStatus.completed
        )
        total, critical = self._store.count_findings(analysis_id)

        failed = [job for job in jobs if job.status is JobStatus.failed]
        error_message = None
        if failed:
            details = "; ".join(f"{job.module.key}: {job.error_message or 'failed'}" for job in failed)
            error_message = f"{len(failed)} of {len(jobs)} module(s) failed ({details})"

        return AggregateResult(
            status=status,
            overall_score=overall,
            module_scores=module_scores,
            total_findings=total,
            critical_findings_count=critical,
            error_message=error_message,
            failed_modules=[job.module.key for job in failed],
        )

    def check(self, analysis_id: str) -> AggregationOutcome:
        jobs = self._store.list_jobs(analysis_id)
        if not jobs:
            logger.warning(f"[{analysis_id}] Aggregation requested for analysis without jobs")
            return AggregationOutcome.pending

        open_jobs = [job for job in jobs if not job.status.is_terminal]
        if open_jobs:
            logger.debug(f"[{analysis_id}] {len(open_jobs)}/{len(jobs)} job(s) still open")
            return AggregationOutcome.pending

        result = self.compute(analysis_id, jobs)
        won = self._store.update_analysis_if(
            analysis_id,
            [AnalysisStatus.analyzing],
            result.status,
            overall_score=result.overall_score,
            module_scores=result.module_scores,
            total_findings=result.total_findings,
            critical_findings_count=result.critical_findings_count,
            error_message=result.error_message,
            completed_at=datetime.now(timezone.utc),
        )
        if not won:
            logger.info(f"[{analysis_id}] Aggregation race lost, analysis already finalized")
            return AggregationOutcome.race_lost

        logger.info(
            f"[{analysis_id}] Analysis {result.status.value}: score={result.overall_score}, "
            f"findings={result.total_findings} (critical={result.critical_findings_count})"
        )
        self._notifier.analysis_finished(analysis_id, result.status, result.summary(analysis_id))
        return AggregationOutcome.aggregated

    def finalize_fetch_failure(self, analysis_id: str, error_message: str) -> AggregationOutcome:
        """pending|fetching -> failed once the capture has given up."""
        won = self._store.update_analysis_if(
            analysis_id,
            [AnalysisStatus.pending, AnalysisStatus.fetching],
            AnalysisStatus.failed,
            error_message=error_message,
            completed_at=datetime.now(timezone.utc),
        )
        if not won:
            logger.info(f"[{analysis_id}] Fetch failure finalization lost the race")
            return AggregationOutcome.race_lost

        logger.error(f"[{analysis_id}] Analysis failed during fetch: {error_message}")
        self._notifier.analysis_finished(
            analysis_id,
            AnalysisStatus.failed,
            {
                "analysis_id": analysis_id,
                "status": AnalysisStatus.failed.value,
                "overall_score": None,
                "error_message": error_message,
            },
        )
        return AggregationOutcome.aggregated
