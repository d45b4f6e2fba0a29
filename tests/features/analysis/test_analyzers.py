"""
Tests for the reference analyzers, the asset bundle round trip and the
rule catalog that resolves their findings.
"""
from unittest.mock import MagicMock

import pytest

from sitecraft.features.analysis.models import FindingSeverity
from sitecraft.features.analysis.schemas.assets import AssetBundle
from sitecraft.features.analysis.schemas.finding import FindingDraft
from sitecraft.features.analysis.services.analyzers import (
    AccessibilityAnalyzer,
    PerformanceAnalyzer,
    StructureAnalyzer,
    default_registry,
)
from sitecraft.features.analysis.services.asset_bundle import load_bundle, persist_assets
from sitecraft.features.analysis.services.rule_catalog import RuleCatalog
from sitecraft.features.analysis.services.scoring import SeverityWeightedScorer
from sitecraft.platform.exceptions import AssetNotFound
from sitecraft.platform.storage.asset_store import FileSystemAssetStore


def bundle(html, load_time_ms=500.0, resources=()):
    return AssetBundle(
        asset_path="ws/a1",
        html=html,
        metadata={"url": "https://example.com/", "final_url": "https://example.com/", "load_time_ms": load_time_ms, "resources": list(resources)},
    )


def keys(findings):
    return sorted(finding.rule_key for finding in findings)


CLEAN_HTML = """<!DOCTYPE html>
<html lang="en">
<head><title>Clean</title></head>
<body>
  <main>
    <h1>Title</h1>
    <h2>Section</h2>
    <img src="/a.png" alt="" width="10" height="10">
    <label>Name <input name="name"></label>
    <input type="email" aria-label="Email">
    <input type="submit" value="Go">
  </main>
</body>
</html>
"""


class TestSampleScores:
    def test_reference_analyzers_score_the_sample_page(self, sample_html, sample_scores):
        scorer = SeverityWeightedScorer()
        registry = default_registry()
        assets = bundle(sample_html, load_time_ms=1200.0)

        scores = {
            key: scorer.score([f.severity for f in registry.get(key).analyze(assets)])
            for key in registry.keys()
        }

        assert scores == sample_scores

    def test_clean_page_has_no_findings(self):
        assets = bundle(CLEAN_HTML)

        for analyzer in (AccessibilityAnalyzer(), StructureAnalyzer(), PerformanceAnalyzer()):
            assert analyzer.analyze(assets) == []


class TestAccessibilityAnalyzer:
    def test_missing_lang_title_alt_and_label(self):
        html = '<html><head></head><body><img src="/x.png"><select id="s"></select><textarea></textarea></body></html>'

        findings = AccessibilityAnalyzer().analyze(bundle(html))

        assert keys(findings) == [
            "ACC_FRM_01_LABEL_MISSING",
            "ACC_FRM_01_LABEL_MISSING",
            "ACC_IMG_01_ALT_TEXT_MISSING",
            "ACC_STR_04_PAGE_LANG_MISSING",
            "ACC_STR_06_PAGE_TITLE_MISSING",
        ]
        locations = {f.location for f in findings if f.rule_key == "ACC_FRM_01_LABEL_MISSING"}
        assert locations == {"select#s", "textarea"}

    def test_empty_alt_counts_as_decorative(self):
        html = '<html lang="en"><head><title>t</title></head><body><img src="/x.png" alt=""></body></html>'

        assert AccessibilityAnalyzer().analyze(bundle(html)) == []

    def test_blank_lang_is_missing(self):
        html = '<html lang="  "><head><title>t</title></head></html>'

        findings = AccessibilityAnalyzer().analyze(bundle(html))

        assert [(f.rule_key, f.severity) for f in findings] == [
            ("ACC_STR_04_PAGE_LANG_MISSING", FindingSeverity.critical)
        ]


class TestStructureAnalyzer:
    def test_no_h1(self):
        findings = StructureAnalyzer().analyze(bundle("<main><h2>Only</h2></main>"))

        assert keys(findings) == ["ACC_STR_02_NO_H1"]

    def test_multiple_h1_and_skipped_levels(self):
        html = '<div role="main"><h1>a</h1><h4>b</h4><h1>c</h1><h2>d</h2><h5>e</h5></div>'

        findings = StructureAnalyzer().analyze(bundle(html))

        assert keys(findings) == [
            "ACC_STR_01_HEADING_ORDER",
            "ACC_STR_01_HEADING_ORDER",
            "ACC_STR_03_MULTIPLE_H1",
        ]
        assert [f.message for f in findings if f.rule_key == "ACC_STR_01_HEADING_ORDER"] == [
            "Heading level jumps from h1 to h4",
            "Heading level jumps from h2 to h5",
        ]


class TestPerformanceAnalyzer:
    @pytest.mark.parametrize(
        "load_time_ms, severity",
        [(2999.0, None), (3000.0, FindingSeverity.serious), (8000.0, FindingSeverity.critical)],
    )
    def test_slow_load_thresholds(self, load_time_ms, severity):
        findings = PerformanceAnalyzer().analyze(bundle("<p>x</p>", load_time_ms=load_time_ms))

        slow = [f.severity for f in findings if f.rule_key == "PERF_CWV_05_TTFB_SLOW"]
        assert slow == ([] if severity is None else [severity])

    def test_heavy_document(self):
        findings = PerformanceAnalyzer().analyze(bundle("<p>" + "x" * 600_000 + "</p>"))

        assert keys(findings) == ["PERF_IMG_07_PAGE_WEIGHT_HIGH"]

    def test_render_blocking_counts_head_resources(self):
        head = "".join(f'<script src="/{i}.js"></script>' for i in range(4))
        head += '<script src="/async.js" async></script><script src="/m.js" type="module"></script>'
        head += '<link rel="stylesheet" href="/a.css"><link rel="stylesheet" href="/b.css">'
        html = f"<html><head>{head}</head><body></body></html>"

        findings = PerformanceAnalyzer().analyze(bundle(html))

        assert keys(findings) == ["PERF_RES_01_RENDER_BLOCKING"]
        assert findings[0].message.startswith("6 render-blocking")

    def test_render_blocking_uses_captured_resources(self):
        resources = [{"url": f"/{i}.css", "type": "stylesheet", "blocking": True} for i in range(7)]

        findings = PerformanceAnalyzer().analyze(bundle("<p>x</p>", resources=resources))

        assert keys(findings) == ["PERF_RES_01_RENDER_BLOCKING"]


class TestAssetBundle:
    def test_persist_and_load(self, tmp_path, captured_factory, sample_html):
        store = FileSystemAssetStore(tmp_path)

        persist_assets(store, "ws_1/a1", captured_factory())
        loaded = load_bundle(store, "ws_1/a1")

        assert loaded.html == sample_html
        assert loaded.final_url == "https://example.com/"
        assert loaded.load_time_ms == 1200.0
        assert loaded.screenshot.startswith(b"\x89PNG")
        assert loaded.robots_txt.startswith("User-agent")
        assert loaded.sitemap_xml is None

    def test_missing_bundle_raises(self, tmp_path):
        with pytest.raises(AssetNotFound):
            load_bundle(FileSystemAssetStore(tmp_path), "ws_1/nothing")


class TestRuleCatalog:
    def test_resolve_splits_known_and_unknown_keys(self):
        store = MagicMock()
        store.load_rule_index.return_value = {"ACC_STR_02_NO_H1": "rule-1"}
        catalog = RuleCatalog(store)

        resolved, missed = catalog.resolve(
            [
                FindingDraft(rule_key="ACC_STR_02_NO_H1", severity=FindingSeverity.serious, message="no h1"),
                FindingDraft(rule_key="NOPE", severity=FindingSeverity.minor, message="?"),
            ]
        )

        assert [r.rule_id for r in resolved] == ["rule-1"]
        assert missed == ["NOPE"]
        # initial load plus one reload for the miss
        assert store.load_rule_index.call_count == 2

    def test_index_is_cached_between_hits(self):
        store = MagicMock()
        store.load_rule_index.return_value = {"A": "1", "B": "2"}
        catalog = RuleCatalog(store)

        assert catalog.lookup("A") == "1"
        assert catalog.lookup("B") == "2"
        store.load_rule_index.assert_called_once()
