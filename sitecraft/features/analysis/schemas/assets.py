"""
Asset Schemas

What the capturer hands to the Fetcher, and what analyzers get back from
the asset store. Files live under `{asset_path}/` with the fixed names below.
"""
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

HTML_FILE = "page.html"
METADATA_FILE = "metadata.json"
SCREENSHOT_FILE = "screenshot.png"
ROBOTS_FILE = "robots.txt"
SITEMAP_FILE = "sitemap.xml"


def asset_file(asset_path: str, name: str) -> str:
    return f"{asset_path.rstrip('/')}/{name}"


class ResourceEntry(BaseModel):
    """One sub-resource referenced by the page."""
    url: str
    type: str  # script | stylesheet | image | font | other
    blocking: bool = False
    size_bytes: Optional[int] = None


class CapturedAssets(BaseModel):
    """Everything a single capture produced for a URL."""
    url: str
    final_url: str
    html: str
    title: Optional[str] = None
    load_time_ms: float = 0.0
    resources: List[ResourceEntry] = Field(default_factory=list)
    screenshot: Optional[bytes] = None
    robots_txt: Optional[str] = None
    sitemap_xml: Optional[str] = None

    def metadata(self) -> Dict[str, Any]:
        return {
            "url": self.url,
            "final_url": self.final_url,
            "title": self.title,
            "load_time_ms": self.load_time_ms,
            "content_length": len(self.html.encode("utf-8")),
            "resources": [resource.model_dump() for resource in self.resources],
            "has_screenshot": self.screenshot is not None,
            "has_robots_txt": self.robots_txt is not None,
            "has_sitemap_xml": self.sitemap_xml is not None,
        }


class AssetBundle(BaseModel):
    """Read-only view of stored assets, as passed to `Analyzer.analyze()`."""
    asset_path: str
    html: str
    metadata: Dict[str, Any] = Field(default_factory=dict)
    screenshot: Optional[bytes] = None
    robots_txt: Optional[str] = None
    sitemap_xml: Optional[str] = None

    model_config = {"frozen": True}

    @property
    def final_url(self) -> str:
        return self.metadata.get("final_url") or self.metadata.get("url") or ""

    @property
    def load_time_ms(self) -> float:
        return float(self.metadata.get("load_time_ms") or 0.0)

    @property
    def resources(self) -> List[ResourceEntry]:
        return [ResourceEntry(**entry) for entry in self.metadata.get("resources", [])]
