from typing import List

from sitecraft.features.analysis.models.finding import FindingSeverity
from sitecraft.features.analysis.schemas.assets import AssetBundle
from sitecraft.features.analysis.schemas.finding import FindingDraft
from sitecraft.features.analysis.services.analyzers.base import parse_html

SLOW_LOAD = "PERF_CWV_05_TTFB_SLOW"
PAGE_WEIGHT_HIGH = "PERF_IMG_07_PAGE_WEIGHT_HIGH"
RENDER_BLOCKING = "PERF_RES_01_RENDER_BLOCKING"
DIMENSIONS_MISSING = "PERF_IMG_03_MISSING_DIMENSIONS"


class PerformanceAnalyzer:
    """
    Load time, document weight and render-blocking resources.

    Thresholds are deliberately coarse; the capture only records wall-clock
    load time, not field Web Vitals.
    """

    module_key = "performance"

    SLOW_LOAD_MS = 3000.0
    VERY_SLOW_LOAD_MS = 8000.0
    MAX_HTML_BYTES = 500_000
    MAX_BLOCKING_RESOURCES = 5

    def analyze(self, assets: AssetBundle) -> List[FindingDraft]:
        soup = parse_html(assets)
        findings: List[FindingDraft] = []

        load_ms = assets.load_time_ms
        if load_ms >= self.SLOW_LOAD_MS:
            findings.append(
                FindingDraft(
                    rule_key=SLOW_LOAD,
                    severity=FindingSeverity.critical if load_ms >= self.VERY_SLOW_LOAD_MS else FindingSeverity.serious,
                    message=f"Page took {load_ms / 1000:.1f}s to load",
                    location=assets.final_url or None,
                )
            )

        html_bytes = len(assets.html.encode("utf-8"))
        if html_bytes > self.MAX_HTML_BYTES:
            findings.append(
                FindingDraft(
                    rule_key=PAGE_WEIGHT_HIGH,
                    severity=FindingSeverity.moderate,
                    message=f"HTML document is {html_bytes // 1024} KB",
                )
            )

        blocking = [
            script for script in soup.select("head script[src]")
            if not script.has_attr("async") and not script.has_attr("defer")
            and (script.get("type") or "").lower() != "module"
        ]
        blocking += soup.select("head link[rel~=stylesheet]")
        blocking_count = max(len(blocking), sum(1 for resource in assets.resources if resource.blocking))
        if blocking_count > self.MAX_BLOCKING_RESOURCES:
            findings.append(
                FindingDraft(
                    rule_key=RENDER_BLOCKING,
                    severity=FindingSeverity.moderate,
                    message=f"{blocking_count} render-blocking scripts/stylesheets in <head>",
                    location="head",
                )
            )

        for img in soup.find_all("img"):
            if not img.get("width") or not img.get("height"):
                findings.append(
                    FindingDraft(
                        rule_key=DIMENSIONS_MISSING,
                        severity=FindingSeverity.minor,
                        message="Image has no explicit width/height",
                        location=f"img[src={img.get('src', '')}]",
                    )
                )

        return findings
