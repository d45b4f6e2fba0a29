from datetime import datetime, timezone

from sitecraft.features.analysis.models import ACTIVE_ANALYSIS_STATUSES, AnalysisStatus, JobStatus
from sitecraft.platform.exceptions import AnalysisNotFoundError
from sitecraft.platform.logger import get_logger

logger = get_logger(__name__)


def cancel_analysis(status_store, notifier, analysis_id: str) -> bool:
    """
    Move a non-terminal analysis to `cancelled` and fail its pending jobs.

    Running jobs are left to their workers, which re-check for cancellation
    before writing findings. Returns False when the analysis had already
    reached a terminal status.
    """
    analysis = status_store.get_analysis(analysis_id)
    if analysis is None:
        raise AnalysisNotFoundError(f"Analysis {analysis_id} not found", {"analysis_id": analysis_id})

    won = status_store.update_analysis_if(
        analysis_id,
        ACTIVE_ANALYSIS_STATUSES,
        AnalysisStatus.cancelled,
        error_message="Cancelled by request",
        completed_at=datetime.now(timezone.utc),
    )
    if not won:
        logger.info(f"[{analysis_id}] Cancel ignored, analysis already {analysis.status.value}")
        return False

    failed = status_store.fail_open_jobs(analysis_id, "Analysis cancelled", [JobStatus.pending])
    logger.info(f"[{analysis_id}] Analysis cancelled ({failed} pending job(s) failed)")
    notifier.analysis_finished(
        analysis_id,
        AnalysisStatus.cancelled,
        {"analysis_id": analysis_id, "status": AnalysisStatus.cancelled.value, "overall_score": None},
    )
    return True
