from sqlalchemy import Boolean, Column, String, Text

from sitecraft.platform.db.base import BaseModel


class AnalysisModule(BaseModel):
    """Static catalog entry (e.g. Accessibility, Structure, Performance)."""
    __tablename__ = "analysis_modules"

    key = Column(String(64), unique=True, nullable=False, index=True)
    name = Column(String(128), unique=True, nullable=False)
    description = Column(Text, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
