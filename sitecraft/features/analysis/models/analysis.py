import enum

from sqlalchemy import JSON, Column, DateTime, Enum, Index, Integer, String, Text
from sqlalchemy.orm import relationship

from sitecraft.platform.db.base import BaseModel


class AnalysisStatus(enum.Enum):
    """Analysis status state machine"""
    pending = "pending"
    fetching = "fetching"
    analyzing = "analyzing"
    completed = "completed"
    partially_failed = "partially_failed"
    failed = "failed"
    cancelled = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_ANALYSIS_STATUSES


TERMINAL_ANALYSIS_STATUSES = frozenset(
    {
        AnalysisStatus.completed,
        AnalysisStatus.partially_failed,
        AnalysisStatus.failed,
        AnalysisStatus.cancelled,
    }
)
ACTIVE_ANALYSIS_STATUSES = frozenset(set(AnalysisStatus) - TERMINAL_ANALYSIS_STATUSES)


class Analysis(BaseModel):
    """
    One end-to-end analysis request.

    Status only moves forward and every transition goes through
    StatusStore.update_analysis_if(); once terminal the row is frozen.
    """
    __tablename__ = "analyses"

    workspace_id = Column(String(64), nullable=False, index=True)
    target_url = Column(String(2048), nullable=False)
    asset_path = Column(String(512), nullable=False)

    status = Column(Enum(AnalysisStatus), default=AnalysisStatus.pending, nullable=False, index=True)
    error_message = Column(Text, nullable=True)

    # Aggregated results (written once, by the aggregation CAS winner)
    overall_score = Column(Integer, nullable=True)  # 0-100
    module_scores = Column(JSON, nullable=True)  # {module_key: score}
    total_findings = Column(Integer, default=0, nullable=False)
    critical_findings_count = Column(Integer, default=0, nullable=False)

    completed_at = Column(DateTime(timezone=True), nullable=True)

    jobs = relationship(
        "AnalysisJob",
        back_populates="analysis",
        lazy="selectin",
        cascade="all, delete-orphan",
        order_by="AnalysisJob.created_at",
    )

    __table_args__ = (
        Index("idx_analyses_workspace_created", "workspace_id", "created_at"),
    )
