from typing import Optional

from pydantic import BaseModel, Field

from sitecraft.features.analysis.models.finding import FindingSeverity


class FindingDraft(BaseModel):
    """An issue as emitted by an analyzer, before rule resolution."""
    rule_key: str = Field(..., min_length=1)
    severity: FindingSeverity
    message: str
    location: Optional[str] = None

    model_config = {"frozen": True}


class ResolvedFinding(BaseModel):
    """A draft whose rule key resolved against the catalog; ready to persist."""
    rule_id: str
    rule_key: str
    severity: FindingSeverity
    message: str
    location: Optional[str] = None

    def to_row(self) -> dict:
        return self.model_dump()
