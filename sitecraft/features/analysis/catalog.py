"""
Reference data for the module and rule catalog.

Shared by the initial migration and `scripts/seed_catalog.py`. Rule keys
follow `<AREA>_<GROUP>_<NN>_<NAME>`.
"""
from typing import Dict, List

from sqlalchemy import select
from sqlalchemy.orm import Session

from sitecraft.features.analysis.models import AnalysisModule, FindingSeverity, Rule
from sitecraft.platform.db.base import new_id
from sitecraft.platform.logger import get_logger

logger = get_logger(__name__)

MODULES: List[Dict[str, str]] = [
    {
        "key": "accessibility",
        "name": "Accessibility",
        "description": "Document language, page title, text alternatives and form labels.",
    },
    {
        "key": "structure",
        "name": "Structure",
        "description": "Heading outline and landmark regions.",
    },
    {
        "key": "performance",
        "name": "Performance",
        "description": "Load time, document weight and render-blocking resources.",
    },
]

RULES: List[Dict[str, str]] = [
    # accessibility
    {"module": "accessibility", "rule_key": "ACC_STR_04_PAGE_LANG_MISSING",
     "name": "Page language missing", "default_severity": "critical"},
    {"module": "accessibility", "rule_key": "ACC_STR_06_PAGE_TITLE_MISSING",
     "name": "Page title missing", "default_severity": "critical"},
    {"module": "accessibility", "rule_key": "ACC_IMG_01_ALT_TEXT_MISSING",
     "name": "Image alt text missing", "default_severity": "serious"},
    {"module": "accessibility", "rule_key": "ACC_FRM_01_LABEL_MISSING",
     "name": "Form control label missing", "default_severity": "serious"},
    # structure
    {"module": "structure", "rule_key": "ACC_STR_01_HEADING_ORDER",
     "name": "Heading levels skipped", "default_severity": "moderate"},
    {"module": "structure", "rule_key": "ACC_STR_02_NO_H1",
     "name": "No h1 heading", "default_severity": "serious"},
    {"module": "structure", "rule_key": "ACC_STR_03_MULTIPLE_H1",
     "name": "Multiple h1 headings", "default_severity": "moderate"},
    {"module": "structure", "rule_key": "ACC_STR_10_LANDMARK_MISSING",
     "name": "Main landmark missing", "default_severity": "moderate"},
    # performance
    {"module": "performance", "rule_key": "PERF_CWV_05_TTFB_SLOW",
     "name": "Slow page load", "default_severity": "serious"},
    {"module": "performance", "rule_key": "PERF_IMG_07_PAGE_WEIGHT_HIGH",
     "name": "Heavy HTML document", "default_severity": "moderate"},
    {"module": "performance", "rule_key": "PERF_RES_01_RENDER_BLOCKING",
     "name": "Render-blocking resources", "default_severity": "moderate"},
    {"module": "performance", "rule_key": "PERF_IMG_03_MISSING_DIMENSIONS",
     "name": "Image dimensions missing", "default_severity": "minor"},
]


def seed_catalog(session: Session) -> Dict[str, int]:
    """Insert missing modules and rules. Existing rows are left untouched."""
    modules = {module.key: module for module in session.scalars(select(AnalysisModule))}
    added_modules = 0
    for entry in MODULES:
        if entry["key"] in modules:
            continue
        module = AnalysisModule(id=new_id(), is_active=True, **entry)
        session.add(module)
        modules[entry["key"]] = module
        added_modules += 1
    session.flush()

    existing_rules = set(session.scalars(select(Rule.rule_key)))
    added_rules = 0
    for entry in RULES:
        if entry["rule_key"] in existing_rules:
            continue
        session.add(
            Rule(
                id=new_id(),
                module_id=modules[entry["module"]].id,
                rule_key=entry["rule_key"],
                name=entry["name"],
                default_severity=FindingSeverity(entry["default_severity"]),
            )
        )
        added_rules += 1
    session.flush()

    logger.info(f"Catalog seeded: {added_modules} module(s), {added_rules} rule(s) added")
    return {"modules": added_modules, "rules": added_rules}
