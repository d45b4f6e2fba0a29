import enum

from sqlalchemy import Column, Enum, ForeignKey, Index, String, Text
from sqlalchemy.orm import relationship

from sitecraft.platform.db.base import BaseModel


class FindingSeverity(enum.Enum):
    """Issue severity levels, most to least severe"""
    critical = "critical"
    serious = "serious"
    moderate = "moderate"
    minor = "minor"


class Rule(BaseModel):
    """Rule catalog entry; findings reference rules by id."""
    __tablename__ = "rules"

    module_id = Column(String(36), ForeignKey("analysis_modules.id", ondelete="CASCADE"), nullable=False, index=True)
    rule_key = Column(String(128), unique=True, nullable=False, index=True)  # e.g. ACC_IMG_01_ALT_TEXT_MISSING
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    default_severity = Column(Enum(FindingSeverity), nullable=False)


class Finding(BaseModel):
    """
    One issue reported by an analyzer job.

    Append-only: inserted in the same transaction that completes its job and
    never updated afterwards.
    """
    __tablename__ = "findings"

    analysis_id = Column(String(36), ForeignKey("analyses.id", ondelete="CASCADE"), nullable=False, index=True)
    analysis_job_id = Column(String(36), ForeignKey("analysis_jobs.id", ondelete="CASCADE"), nullable=False, index=True)
    rule_id = Column(String(36), ForeignKey("rules.id", ondelete="RESTRICT"), nullable=False)
    rule_key = Column(String(128), nullable=False)

    severity = Column(Enum(FindingSeverity), nullable=False, index=True)
    location = Column(String(1024), nullable=True)  # CSS selector / asset path
    message = Column(Text, nullable=False)

    rule = relationship("Rule", lazy="joined")

    __table_args__ = (
        Index("idx_findings_analysis_severity", "analysis_id", "severity"),
    )
