import time
from typing import List, Optional, Protocol
from urllib.parse import urljoin, urlparse

import httpx
from selenium import webdriver
from selenium.common.exceptions import TimeoutException, WebDriverException
from selenium.webdriver.chrome.options import Options
from selenium.webdriver.chrome.service import Service

from sitecraft.features.analysis.schemas.assets import CapturedAssets, ResourceEntry
from sitecraft.platform.exceptions import FetchFailure
from sitecraft.platform.logger import get_logger

logger = get_logger(__name__)

# Collected in the page after load; one entry per script, stylesheet and image.
_RESOURCE_SCRIPT = """
const entries = [];
document.querySelectorAll('script[src]').forEach(function (el) {
  const inHead = el.closest('head') !== null;
  const blocking = inHead && !el.async && !el.defer && el.type !== 'module';
  entries.push({url: el.src, type: 'script', blocking: blocking});
});
document.querySelectorAll('link[rel~="stylesheet"][href]').forEach(function (el) {
  entries.push({url: el.href, type: 'stylesheet', blocking: el.closest('head') !== null});
});
document.querySelectorAll('img[src]').forEach(function (el) {
  entries.push({url: el.currentSrc || el.src, type: 'image', blocking: false});
});
const sizes = {};
(performance.getEntriesByType('resource') || []).forEach(function (e) {
  sizes[e.name] = e.transferSize || e.encodedBodySize || null;
});
entries.forEach(function (e) { e.size_bytes = sizes[e.url] || null; });
return entries;
"""


class AssetCapturer(Protocol):
    def capture(self, url: str) -> CapturedAssets:
        """Load `url` once and return everything analyzers need. Raises FetchFailure."""


class SeleniumAssetCapturer:
    """
    Headless Chrome capture: rendered HTML, title, wall-clock load time,
    resource listing and a full-window screenshot. robots.txt and
    sitemap.xml are fetched over plain HTTP.
    """

    def __init__(
        self,
        page_load_timeout: int = 30,
        chromedriver_path: Optional[str] = None,
        http_timeout: float = 10.0,
    ):
        self.page_load_timeout = page_load_timeout
        self.chromedriver_path = chromedriver_path
        self.http_timeout = http_timeout

    def build_driver(self) -> webdriver.Chrome:
        chrome_options = Options()
        chrome_options.add_argument("--headless=new")
        chrome_options.add_argument("--no-sandbox")
        chrome_options.add_argument("--disable-dev-shm-usage")
        chrome_options.add_argument("--window-size=1366,900")

        if self.chromedriver_path:
            driver_service = Service(executable_path=self.chromedriver_path)
            return webdriver.Chrome(service=driver_service, options=chrome_options)
        return webdriver.Chrome(options=chrome_options)

    def capture(self, url: str) -> CapturedAssets:
        driver = None
        try:
            driver = self.build_driver()
            driver.set_page_load_timeout(self.page_load_timeout)

            start_time = time.monotonic()
            driver.get(url)
            load_time_ms = (time.monotonic() - start_time) * 1000

            html = driver.page_source
            final_url = driver.current_url or url
            title = driver.title or None
            resources = self._collect_resources(driver)
            screenshot = self._screenshot(driver)
        except TimeoutException as e:
            raise FetchFailure(
                f"Timed out loading {url} after {self.page_load_timeout}s", {"url": url}
            ) from e
        except WebDriverException as e:
            raise FetchFailure(f"Browser error loading {url}: {e.msg or e}", {"url": url}) from e
        finally:
            if driver is not None:
                try:
                    driver.quit()
                except WebDriverException as e:
                    logger.warning(f"Failed to quit driver for {url}: {e}")

        if not html or not html.strip():
            raise FetchFailure(f"Empty document returned for {url}", {"url": url})

        robots_txt, sitemap_xml = self._fetch_crawl_files(final_url)
        logger.info(f"Captured {final_url} in {load_time_ms:.0f}ms ({len(html)} chars, {len(resources)} resources)")

        return CapturedAssets(
            url=url,
            final_url=final_url,
            html=html,
            title=title,
            load_time_ms=round(load_time_ms, 1),
            resources=resources,
            screenshot=screenshot,
            robots_txt=robots_txt,
            sitemap_xml=sitemap_xml,
        )

    def _collect_resources(self, driver) -> List[ResourceEntry]:
        try:
            raw = driver.execute_script(_RESOURCE_SCRIPT) or []
        except WebDriverException as e:
            logger.warning(f"Resource listing failed: {e}")
            return []
        return [ResourceEntry(**entry) for entry in raw if entry.get("url")]

    def _screenshot(self, driver) -> Optional[bytes]:
        try:
            return driver.get_screenshot_as_png()
        except WebDriverException as e:
            logger.warning(f"Screenshot failed: {e}")
            return None

    def _fetch_crawl_files(self, page_url: str):
        parsed = urlparse(page_url)
        origin = f"{parsed.scheme}://{parsed.netloc}"
        with httpx.Client(timeout=self.http_timeout, follow_redirects=True) as client:
            robots = self._fetch_text(client, urljoin(origin, "/robots.txt"))
            sitemap = self._fetch_text(client, urljoin(origin, "/sitemap.xml"))
        return robots, sitemap

    @staticmethod
    def _fetch_text(client: httpx.Client, url: str) -> Optional[str]:
        try:
            response = client.get(url)
        except httpx.HTTPError as e:
            logger.info(f"Could not fetch {url}: {e}")
            return None
        if response.status_code != 200:
            return None
        return response.text
