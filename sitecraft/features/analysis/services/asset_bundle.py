import json

from sitecraft.features.analysis.schemas.assets import (
    HTML_FILE,
    METADATA_FILE,
    ROBOTS_FILE,
    SCREENSHOT_FILE,
    SITEMAP_FILE,
    AssetBundle,
    CapturedAssets,
    asset_file,
)
from sitecraft.platform.exceptions import AssetNotFound
from sitecraft.platform.logger import get_logger

logger = get_logger(__name__)


def persist_assets(store, asset_path: str, captured: CapturedAssets) -> None:
    """Write a capture below `asset_path`. Metadata goes last so its presence marks a complete bundle."""
    store.put(asset_file(asset_path, HTML_FILE), captured.html)
    if captured.screenshot is not None:
        store.put(asset_file(asset_path, SCREENSHOT_FILE), captured.screenshot)
    if captured.robots_txt is not None:
        store.put(asset_file(asset_path, ROBOTS_FILE), captured.robots_txt)
    if captured.sitemap_xml is not None:
        store.put(asset_file(asset_path, SITEMAP_FILE), captured.sitemap_xml)
    store.put(asset_file(asset_path, METADATA_FILE), json.dumps(captured.metadata()))
    logger.info(f"Persisted assets for {captured.final_url} under {asset_path}")


def _optional(store, path: str):
    try:
        return store.get(path)
    except AssetNotFound:
        return None


def load_bundle(store, asset_path: str) -> AssetBundle:
    """Read a persisted bundle. Raises AssetNotFound when the HTML or metadata is missing."""
    html = store.get(asset_file(asset_path, HTML_FILE)).decode("utf-8", errors="replace")
    metadata = json.loads(store.get(asset_file(asset_path, METADATA_FILE)))

    robots = _optional(store, asset_file(asset_path, ROBOTS_FILE))
    sitemap = _optional(store, asset_file(asset_path, SITEMAP_FILE))
    return AssetBundle(
        asset_path=asset_path,
        html=html,
        metadata=metadata,
        screenshot=_optional(store, asset_file(asset_path, SCREENSHOT_FILE)),
        robots_txt=robots.decode("utf-8", errors="replace") if robots is not None else None,
        sitemap_xml=sitemap.decode("utf-8", errors="replace") if sitemap is not None else None,
    )
