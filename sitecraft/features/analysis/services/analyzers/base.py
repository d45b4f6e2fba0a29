from typing import Dict, Iterable, List, Optional, Protocol

from bs4 import BeautifulSoup

from sitecraft.features.analysis.schemas.assets import AssetBundle
from sitecraft.features.analysis.schemas.finding import FindingDraft


class Analyzer(Protocol):
    """A module's only job: turn stored assets into findings."""

    module_key: str

    def analyze(self, assets: AssetBundle) -> List[FindingDraft]: ...


def parse_html(assets: AssetBundle) -> BeautifulSoup:
    return BeautifulSoup(assets.html or "", "html.parser")


def describe(element) -> str:
    """Short CSS-ish locator for a tag, e.g. `img#logo` or `input[name=email]`."""
    name = element.name or "element"
    if element.get("id"):
        return f"{name}#{element['id']}"
    if element.get("name"):
        return f"{name}[name={element['name']}]"
    if element.get("src"):
        return f"{name}[src={element['src']}]"
    return name


class AnalyzerRegistry:
    """module_key -> Analyzer"""

    def __init__(self, analyzers: Iterable[Analyzer] = ()):
        self._analyzers: Dict[str, Analyzer] = {}
        for analyzer in analyzers:
            self.register(analyzer)

    def register(self, analyzer: Analyzer) -> None:
        self._analyzers[analyzer.module_key] = analyzer

    def get(self, module_key: str) -> Optional[Analyzer]:
        return self._analyzers.get(module_key)

    def keys(self) -> List[str]:
        return sorted(self._analyzers)

    def __contains__(self, module_key: str) -> bool:
        return module_key in self._analyzers
