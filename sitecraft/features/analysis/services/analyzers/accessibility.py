from typing import List

from sitecraft.features.analysis.models.finding import FindingSeverity
from sitecraft.features.analysis.schemas.assets import AssetBundle
from sitecraft.features.analysis.schemas.finding import FindingDraft
from sitecraft.features.analysis.services.analyzers.base import describe, parse_html

LANG_MISSING = "ACC_STR_04_PAGE_LANG_MISSING"
TITLE_MISSING = "ACC_STR_06_PAGE_TITLE_MISSING"
IMG_ALT_MISSING = "ACC_IMG_01_ALT_TEXT_MISSING"
FORM_LABEL_MISSING = "ACC_FRM_01_LABEL_MISSING"

_UNLABELLED_INPUT_TYPES = {"hidden", "submit", "button", "reset", "image"}


class AccessibilityAnalyzer:
    """
    Document language, page title, image alternatives and form labels.

    - <html> without a non-empty lang attribute
    - missing or empty <title>
    - <img> without an alt attribute (alt="" marks decorative images and passes)
    - form controls with no label[for], wrapping <label>, aria-label,
      aria-labelledby or title
    """

    module_key = "accessibility"

    def analyze(self, assets: AssetBundle) -> List[FindingDraft]:
        soup = parse_html(assets)
        findings: List[FindingDraft] = []

        html_tag = soup.find("html")
        if html_tag is None or not (html_tag.get("lang") or "").strip():
            findings.append(
                FindingDraft(
                    rule_key=LANG_MISSING,
                    severity=FindingSeverity.critical,
                    message="The <html> element has no lang attribute",
                    location="html",
                )
            )

        title = soup.find("title")
        if title is None or not title.get_text(strip=True):
            findings.append(
                FindingDraft(
                    rule_key=TITLE_MISSING,
                    severity=FindingSeverity.critical,
                    message="The page has no <title>",
                    location="head > title",
                )
            )

        for img in soup.find_all("img"):
            if img.get("alt") is None:
                findings.append(
                    FindingDraft(
                        rule_key=IMG_ALT_MISSING,
                        severity=FindingSeverity.serious,
                        message="Image has no alt attribute",
                        location=describe(img),
                    )
                )

        labelled_ids = {label.get("for") for label in soup.find_all("label") if label.get("for")}
        for control in soup.find_all(["input", "select", "textarea"]):
            if (control.get("type") or "").lower() in _UNLABELLED_INPUT_TYPES:
                continue
            if control.get("id") and control["id"] in labelled_ids:
                continue
            if control.find_parent("label") is not None:
                continue
            if any((control.get(attr) or "").strip() for attr in ("aria-label", "aria-labelledby", "title")):
                continue
            findings.append(
                FindingDraft(
                    rule_key=FORM_LABEL_MISSING,
                    severity=FindingSeverity.serious,
                    message="Form control has no accessible label",
                    location=describe(control),
                )
            )

        return findings
