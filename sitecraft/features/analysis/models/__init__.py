"""
Analysis models package.
"""
from sitecraft.features.analysis.models.analysis import (
    ACTIVE_ANALYSIS_STATUSES,
    TERMINAL_ANALYSIS_STATUSES,
    Analysis,
    AnalysisStatus,
)
from sitecraft.features.analysis.models.analysis_job import TERMINAL_JOB_STATUSES, AnalysisJob, JobStatus
from sitecraft.features.analysis.models.analysis_module import AnalysisModule
from sitecraft.features.analysis.models.finding import Finding, FindingSeverity, Rule

__all__ = [
    "Analysis",
    "AnalysisStatus",
    "ACTIVE_ANALYSIS_STATUSES",
    "TERMINAL_ANALYSIS_STATUSES",
    "AnalysisJob",
    "JobStatus",
    "TERMINAL_JOB_STATUSES",
    "AnalysisModule",
    "Finding",
    "FindingSeverity",
    "Rule",
]
