import enum

from sqlalchemy import Column, DateTime, Enum, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import relationship

from sitecraft.platform.db.base import BaseModel


class JobStatus(enum.Enum):
    """Per-module job state machine: pending -> running -> completed | failed"""
    pending = "pending"
    running = "running"
    completed = "completed"
    failed = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_JOB_STATUSES


TERMINAL_JOB_STATUSES = frozenset({JobStatus.completed, JobStatus.failed})


class AnalysisJob(BaseModel):
    """One module's share of an analysis. Exactly one row per (analysis, module)."""
    __tablename__ = "analysis_jobs"

    analysis_id = Column(String(36), ForeignKey("analyses.id", ondelete="CASCADE"), nullable=False, index=True)
    module_id = Column(String(36), ForeignKey("analysis_modules.id", ondelete="RESTRICT"), nullable=False)

    status = Column(Enum(JobStatus), default=JobStatus.pending, nullable=False, index=True)
    error_message = Column(Text, nullable=True)
    attempts = Column(Integer, default=0, nullable=False)

    score = Column(Integer, nullable=True)  # 0-100, set on completion
    findings_count = Column(Integer, default=0, nullable=False)

    started_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    analysis = relationship("Analysis", back_populates="jobs")
    module = relationship("AnalysisModule", lazy="joined")

    __table_args__ = (
        UniqueConstraint("analysis_id", "module_id", name="uq_analysis_jobs_analysis_module"),
    )
