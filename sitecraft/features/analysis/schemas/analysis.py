"""
Analysis Schemas

Request and response models for the analysis API endpoints.
"""
from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class AnalysisCreateRequest(BaseModel):
    """Request to start an analysis."""
    url: str = Field(..., min_length=1, max_length=2048)
    workspace_id: str = Field(..., min_length=1, max_length=64)
    modules: Optional[List[str]] = None  # defaults to DEFAULT_MODULES

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "url": "https://example.com",
                "workspace_id": "ws_123",
                "modules": ["accessibility", "structure"],
            }
        }
    )


class AnalysisModuleResponse(BaseModel):
    id: str
    key: str
    name: str
    description: Optional[str] = None
    is_active: bool

    model_config = ConfigDict(from_attributes=True)


class AnalysisJobResponse(BaseModel):
    id: str
    module_id: str
    module_key: Optional[str] = None
    status: str
    score: Optional[int] = None
    findings_count: int = 0
    attempts: int = 0
    error_message: Optional[str] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @classmethod
    def from_job(cls, job) -> "AnalysisJobResponse":
        return cls(
            id=job.id,
            module_id=job.module_id,
            module_key=job.module.key if job.module is not None else None,
            status=job.status.value,
            score=job.score,
            findings_count=job.findings_count or 0,
            attempts=job.attempts or 0,
            error_message=job.error_message,
            started_at=job.started_at,
            completed_at=job.completed_at,
        )


class FindingResponse(BaseModel):
    id: str
    analysis_job_id: str
    rule_key: str
    severity: str
    location: Optional[str] = None
    message: str

    @classmethod
    def from_finding(cls, finding) -> "FindingResponse":
        return cls(
            id=finding.id,
            analysis_job_id=finding.analysis_job_id,
            rule_key=finding.rule_key,
            severity=finding.severity.value,
            location=finding.location,
            message=finding.message,
        )


class AnalysisResponse(BaseModel):
    """Analysis status plus, once terminal, its aggregate."""
    id: str
    workspace_id: str
    target_url: str
    status: str
    overall_score: Optional[int] = None
    module_scores: Optional[Dict[str, Optional[int]]] = None
    total_findings: int = 0
    critical_findings_count: int = 0
    error_message: Optional[str] = None
    created_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    jobs: List[AnalysisJobResponse] = Field(default_factory=list)
    findings: List[FindingResponse] = Field(default_factory=list)

    @classmethod
    def from_analysis(cls, analysis, jobs=(), findings=()) -> "AnalysisResponse":
        return cls(
            id=analysis.id,
            workspace_id=analysis.workspace_id,
            target_url=analysis.target_url,
            status=analysis.status.value,
            overall_score=analysis.overall_score,
            module_scores=analysis.module_scores,
            total_findings=analysis.total_findings or 0,
            critical_findings_count=analysis.critical_findings_count or 0,
            error_message=analysis.error_message,
            created_at=analysis.created_at,
            completed_at=analysis.completed_at,
            jobs=[AnalysisJobResponse.from_job(job) for job in jobs],
            findings=[FindingResponse.from_finding(finding) for finding in findings],
        )
