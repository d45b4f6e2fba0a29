import re
from typing import List

from sitecraft.features.analysis.models.finding import FindingSeverity
from sitecraft.features.analysis.schemas.assets import AssetBundle
from sitecraft.features.analysis.schemas.finding import FindingDraft
from sitecraft.features.analysis.services.analyzers.base import parse_html

HEADING_ORDER = "ACC_STR_01_HEADING_ORDER"
NO_H1 = "ACC_STR_02_NO_H1"
MULTIPLE_H1 = "ACC_STR_03_MULTIPLE_H1"
LANDMARK_MISSING = "ACC_STR_10_LANDMARK_MISSING"

_HEADING = re.compile(r"^h[1-6]$")


class StructureAnalyzer:
    """Heading outline and main landmark."""

    module_key = "structure"

    def analyze(self, assets: AssetBundle) -> List[FindingDraft]:
        soup = parse_html(assets)
        findings: List[FindingDraft] = []

        headings = soup.find_all(_HEADING)
        h1_count = sum(1 for heading in headings if heading.name == "h1")

        if h1_count == 0:
            findings.append(
                FindingDraft(
                    rule_key=NO_H1,
                    severity=FindingSeverity.serious,
                    message="The page has no <h1> heading",
                )
            )
        elif h1_count > 1:
            findings.append(
                FindingDraft(
                    rule_key=MULTIPLE_H1,
                    severity=FindingSeverity.moderate,
                    message=f"The page has {h1_count} <h1> headings",
                    location="h1",
                )
            )

        previous = 0
        for heading in headings:
            level = int(heading.name[1])
            # Going deeper by more than one level skips part of the outline
            if previous and level > previous + 1:
                findings.append(
                    FindingDraft(
                        rule_key=HEADING_ORDER,
                        severity=FindingSeverity.moderate,
                        message=f"Heading level jumps from h{previous} to h{level}",
                        location=heading.name,
                    )
                )
            previous = level

        if soup.find("main") is None and soup.find(attrs={"role": "main"}) is None:
            findings.append(
                FindingDraft(
                    rule_key=LANDMARK_MISSING,
                    severity=FindingSeverity.moderate,
                    message="The page has no <main> landmark",
                )
            )

        return findings
