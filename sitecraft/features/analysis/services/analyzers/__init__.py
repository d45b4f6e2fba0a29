"""
Reference analyzers, one per catalog module.
"""
from sitecraft.features.analysis.services.analyzers.accessibility import AccessibilityAnalyzer
from sitecraft.features.analysis.services.analyzers.base import Analyzer, AnalyzerRegistry
from sitecraft.features.analysis.services.analyzers.performance import PerformanceAnalyzer
from sitecraft.features.analysis.services.analyzers.structure import StructureAnalyzer


def default_registry() -> AnalyzerRegistry:
    return AnalyzerRegistry([AccessibilityAnalyzer(), StructureAnalyzer(), PerformanceAnalyzer()])


__all__ = [
    "Analyzer",
    "AnalyzerRegistry",
    "AccessibilityAnalyzer",
    "StructureAnalyzer",
    "PerformanceAnalyzer",
    "default_registry",
]
