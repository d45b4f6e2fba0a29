from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple, TypeVar

from sqlalchemy import func, select, update
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from sitecraft.features.analysis.models import (
    Analysis,
    AnalysisJob,
    AnalysisModule,
    AnalysisStatus,
    Finding,
    FindingSeverity,
    JobStatus,
    Rule,
)
from sitecraft.platform.db.base import new_id
from sitecraft.platform.exceptions import PersistenceError
from sitecraft.platform.logger import get_logger
from sitecraft.platform.utils.retry import RetryPolicy, run_with_retry

logger = get_logger(__name__)

T = TypeVar("T")

OPEN_JOB_STATUSES = (JobStatus.pending, JobStatus.running)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def build_asset_path(workspace_id: str, analysis_id: str) -> str:
    return f"{workspace_id}/{analysis_id}"


class StatusStore:
    """
    Durable record of analyses, their per-module jobs and findings.

    Every status change is a conditional UPDATE keyed on the current status;
    the affected row count tells the caller whether it won the transition.
    Transient OperationalErrors (lock timeouts, dropped connections) are
    retried under `retry_policy`; anything left over surfaces as
    PersistenceError.
    """

    def __init__(self, session_factory: sessionmaker, retry_policy: Optional[RetryPolicy] = None):
        self._session_factory = session_factory
        self._retry_policy = retry_policy or RetryPolicy()

    # ------------------------------------------------------------------ #
    # plumbing
    # ------------------------------------------------------------------ #

    def _run(self, description: str, func: Callable[[], T]) -> T:
        try:
            return run_with_retry(
                func,
                self._retry_policy,
                retry_on=(OperationalError,),
                description=description,
            )
        except SQLAlchemyError as e:
            raise PersistenceError(f"{description} failed: {e}", {"operation": description}) from e

    def _read(self, description: str, work: Callable[[Session], T]) -> T:
        def attempt() -> T:
            with self._session_factory() as session:
                return work(session)

        return self._run(description, attempt)

    def _write(self, description: str, work: Callable[[Session], T]) -> T:
        def attempt() -> T:
            with self._session_factory.begin() as session:
                return work(session)

        return self._run(description, attempt)

    # ------------------------------------------------------------------ #
    # catalog
    # ------------------------------------------------------------------ #

    def list_modules(self, active_only: bool = True) -> List[AnalysisModule]:
        def work(session: Session) -> List[AnalysisModule]:
            stmt = select(AnalysisModule).order_by(AnalysisModule.key)
            if active_only:
                stmt = stmt.where(AnalysisModule.is_active.is_(True))
            return list(session.scalars(stmt))

        return self._read("list modules", work)

    def get_modules_by_keys(self, keys: Iterable[str]) -> List[AnalysisModule]:
        keys = list(keys)

        def work(session: Session) -> List[AnalysisModule]:
            stmt = select(AnalysisModule).where(AnalysisModule.key.in_(keys))
            return list(session.scalars(stmt))

        return self._read("load modules", work)

    def load_rule_index(self) -> Dict[str, str]:
        """rule_key -> rule_id for the whole catalog."""

        def work(session: Session) -> Dict[str, str]:
            rows = session.execute(select(Rule.rule_key, Rule.id))
            return {rule_key: rule_id for rule_key, rule_id in rows}

        return self._read("load rule catalog", work)

    def count_analyses_since(self, workspace_id: str, since: datetime) -> int:
        def work(session: Session) -> int:
            stmt = select(func.count(Analysis.id)).where(
                Analysis.workspace_id == workspace_id,
                Analysis.created_at >= since,
            )
            return session.scalar(stmt) or 0

        return self._read("count analyses", work)

    def count_analyses_last_day(self, workspace_id: str) -> int:
        return self.count_analyses_since(workspace_id, utcnow() - timedelta(days=1))

    # ------------------------------------------------------------------ #
    # analyses
    # ------------------------------------------------------------------ #

    def create_analysis_with_jobs(
        self,
        workspace_id: str,
        target_url: str,
        modules: Sequence[AnalysisModule],
    ) -> Analysis:
        """Insert the analysis and one pending job per module in a single transaction."""
        analysis_id = new_id()

        def work(session: Session) -> Analysis:
            analysis = Analysis(
                id=analysis_id,
                workspace_id=workspace_id,
                target_url=target_url,
                asset_path=build_asset_path(workspace_id, analysis_id),
                status=AnalysisStatus.pending,
                total_findings=0,
                critical_findings_count=0,
            )
            analysis.jobs = [
                AnalysisJob(
                    id=new_id(),
                    module_id=module.id,
                    status=JobStatus.pending,
                    attempts=0,
                    findings_count=0,
                )
                for module in modules
            ]
            session.add(analysis)
            session.flush()
            return analysis

        analysis = self._write("create analysis", work)
        logger.info(f"[{analysis.id}] Created analysis with {len(modules)} job(s) for {target_url}")
        return analysis

    def get_analysis(self, analysis_id: str) -> Optional[Analysis]:
        return self._read("get analysis", lambda session: session.get(Analysis, analysis_id))

    def update_analysis_if(
        self,
        analysis_id: str,
        expected: Iterable[AnalysisStatus],
        new_status: AnalysisStatus,
        **extra: Any,
    ) -> bool:
        """
        Compare-and-swap on the analysis status.

        Sets `new_status` (plus any `extra` columns, in the same UPDATE) only
        if the current status is one of `expected`. Returns True for exactly
        one caller per transition.
        """
        expected = list(expected)

        def work(session: Session) -> bool:
            stmt = (
                update(Analysis)
                .where(Analysis.id == analysis_id, Analysis.status.in_(expected))
                .values(status=new_status, **extra)
                .execution_options(synchronize_session=False)
            )
            return session.execute(stmt).rowcount == 1

        won = self._write("update analysis status", work)
        if won:
            logger.info(
                f"[{analysis_id}] Analysis {'|'.join(s.value for s in expected)} -> {new_status.value}"
            )
        return won

    # ------------------------------------------------------------------ #
    # jobs
    # ------------------------------------------------------------------ #

    def list_jobs(self, analysis_id: str) -> List[AnalysisJob]:
        def work(session: Session) -> List[AnalysisJob]:
            stmt = (
                select(AnalysisJob)
                .where(AnalysisJob.analysis_id == analysis_id)
                .order_by(AnalysisJob.id)
            )
            return list(session.scalars(stmt).unique())

        return self._read("list jobs", work)

    def get_job(self, analysis_id: str, module_id: str) -> Optional[AnalysisJob]:
        def work(session: Session) -> Optional[AnalysisJob]:
            stmt = select(AnalysisJob).where(
                AnalysisJob.analysis_id == analysis_id,
                AnalysisJob.module_id == module_id,
            )
            return session.scalars(stmt).unique().first()

        return self._read("get job", work)

    def start_job(self, job_id: str) -> bool:
        """pending|running -> running; running is accepted so a redelivered task resumes."""

        def work(session: Session) -> bool:
            stmt = (
                update(AnalysisJob)
                .where(AnalysisJob.id == job_id, AnalysisJob.status.in_(OPEN_JOB_STATUSES))
                .values(
                    status=JobStatus.running,
                    attempts=AnalysisJob.attempts + 1,
                    started_at=func.coalesce(AnalysisJob.started_at, utcnow()),
                )
                .execution_options(synchronize_session=False)
            )
            return session.execute(stmt).rowcount == 1

        return self._write("start job", work)

    def complete_job_with_findings(
        self,
        job_id: str,
        analysis_id: str,
        score: int,
        findings: Sequence[Dict[str, Any]],
    ) -> bool:
        """
        running -> completed and the job's findings, in one transaction.

        If the job is no longer running nothing is written and False is returned.
        """

        def work(session: Session) -> bool:
            stmt = (
                update(AnalysisJob)
                .where(AnalysisJob.id == job_id, AnalysisJob.status == JobStatus.running)
                .values(
                    status=JobStatus.completed,
                    score=score,
                    findings_count=len(findings),
                    error_message=None,
                    completed_at=utcnow(),
                )
                .execution_options(synchronize_session=False)
            )
            if session.execute(stmt).rowcount != 1:
                return False
            session.add_all(
                Finding(id=new_id(), analysis_id=analysis_id, analysis_job_id=job_id, **finding)
                for finding in findings
            )
            return True

        return self._write("complete job", work)

    def fail_job(
        self,
        job_id: str,
        error_message: str,
        expected: Iterable[JobStatus] = OPEN_JOB_STATUSES,
    ) -> bool:
        expected = list(expected)

        def work(session: Session) -> bool:
            stmt = (
                update(AnalysisJob)
                .where(AnalysisJob.id == job_id, AnalysisJob.status.in_(expected))
                .values(status=JobStatus.failed, error_message=error_message, completed_at=utcnow())
                .execution_options(synchronize_session=False)
            )
            return session.execute(stmt).rowcount == 1

        return self._write("fail job", work)

    def fail_open_jobs(
        self,
        analysis_id: str,
        error_message: str,
        expected: Iterable[JobStatus] = OPEN_JOB_STATUSES,
    ) -> int:
        """Fail every job of the analysis still in `expected`. Returns how many moved."""
        expected = list(expected)

        def work(session: Session) -> int:
            stmt = (
                update(AnalysisJob)
                .where(AnalysisJob.analysis_id == analysis_id, AnalysisJob.status.in_(expected))
                .values(status=JobStatus.failed, error_message=error_message, completed_at=utcnow())
                .execution_options(synchronize_session=False)
            )
            return session.execute(stmt).rowcount

        return self._write("fail open jobs", work)

    # ------------------------------------------------------------------ #
    # findings
    # ------------------------------------------------------------------ #

    def list_findings(self, analysis_id: str) -> List[Finding]:
        def work(session: Session) -> List[Finding]:
            stmt = (
                select(Finding)
                .where(Finding.analysis_id == analysis_id)
                .order_by(Finding.analysis_job_id, Finding.id)
            )
            return list(session.scalars(stmt).unique())

        return self._read("list findings", work)

    def count_findings(self, analysis_id: str) -> Tuple[int, int]:
        """(total, critical) findings recorded for the analysis."""

        def work(session: Session) -> Tuple[int, int]:
            rows = session.execute(
                select(Finding.severity, func.count(Finding.id))
                .where(Finding.analysis_id == analysis_id)
                .group_by(Finding.severity)
            )
            counts = {severity: count for severity, count in rows}
            return sum(counts.values()), counts.get(FindingSeverity.critical, 0)

        return self._read("count findings", work)
