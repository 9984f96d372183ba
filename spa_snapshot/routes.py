"""
Route Discovery
===============
Builds the ordered route list from a published asset folder.

    robots.txt  →  Sitemap: lines
    sitemap     →  <sitemapindex> (recurse) | <urlset> (collect <loc>)
    <loc> URLs  →  relative paths, deduplicated in first-seen order

Sitemaps are read from the local folder, not fetched: a sitemap URL's
path is mapped onto the folder.
"""

import logging
import xml.etree.ElementTree as ET
from pathlib import Path
from typing import List, Optional, Set
from urllib.parse import urlparse

from .errors import RouteDiscoveryError

logger = logging.getLogger(__name__)

_PERMISSION_PROBE = ".snapshot_permission_test"


def validate_folder(folder: Path) -> None:
    """
    Check that ``folder`` is a writable published app folder.

    Raises:
        RouteDiscoveryError: missing folder, no write access, or a missing
            ``index.html`` / ``robots.txt``
    """
    logger.info(f"[ROUTES] Validating folder: {folder}")
    if not folder.is_dir():
        raise RouteDiscoveryError(f"The specified folder does not exist: {folder}")

    probe = folder / _PERMISSION_PROBE
    try:
        probe.write_text("test", encoding="utf-8")
        probe.unlink()
    except OSError as exc:
        raise RouteDiscoveryError(
            f"The application does not have read/write permissions for {folder}: {exc}"
        ) from exc

    if not (folder / "index.html").is_file():
        raise RouteDiscoveryError(
            "Missing required file: index.html. This may not be a valid published app folder."
        )
    if not (folder / "robots.txt").is_file():
        raise RouteDiscoveryError(
            "Missing required file: robots.txt. Sitemap discovery starts there."
        )


def parse_robots_sitemaps(robots_path: Path) -> List[str]:
    """Return the ``Sitemap:`` URLs listed in robots.txt, in file order."""
    sitemaps = []
    for line in robots_path.read_text(encoding="utf-8", errors="replace").splitlines():
        stripped = line.strip()
        key, sep, value = stripped.partition(":")
        if sep and key.strip().lower() == "sitemap":
            url = value.strip()
            if url:
                sitemaps.append(url)
    return sitemaps


def relative_path(url: str) -> str:
    """``https://example.com/Blog/post`` → ``Blog/post``."""
    parsed = urlparse(url.strip())
    path = parsed.path if parsed.scheme or parsed.netloc else url.strip()
    return path.lstrip("/")


def local_path(folder: Path, url: str) -> Path:
    rel = relative_path(url)
    return folder.joinpath(*[part for part in rel.split("/") if part])


def _local_name(tag: str) -> str:
    return tag.split("}", 1)[1] if tag.startswith("{") else tag


def _loc_text(elem: ET.Element) -> str:
    for child in elem:
        if _local_name(child.tag) == "loc" and child.text:
            return child.text.strip()
    return ""


def parse_sitemap(folder: Path, sitemap_url: str, _seen: Optional[Set[Path]] = None) -> List[str]:
    """
    Collect page URLs from a sitemap, following sitemap indexes.

    Args:
        folder: Asset folder the sitemap URL is resolved against
        sitemap_url: URL (or path) of the sitemap

    Returns:
        Absolute ``<loc>`` URLs in document order

    Raises:
        RouteDiscoveryError: missing or malformed sitemap, or URLs that
            are not lowercase
    """
    _seen = set() if _seen is None else _seen
    path = local_path(folder, sitemap_url)
    if not path.is_file():
        raise RouteDiscoveryError(f"Sitemap not found at expected local path: {path}")
    if path in _seen:
        logger.warning(f"[ROUTES] Sitemap {path} referenced twice; skipping")
        return []
    _seen.add(path)

    try:
        root = ET.parse(path).getroot()
    except ET.ParseError as exc:
        raise RouteDiscoveryError(f"Failed to parse sitemap: {path}: {exc}") from exc

    urls: List[str] = []
    kind = _local_name(root.tag)
    if kind == "sitemapindex":
        for child in root:
            if _local_name(child.tag) != "sitemap":
                continue
            loc = _loc_text(child)
            if loc:
                urls.extend(parse_sitemap(folder, loc, _seen))
    elif kind == "urlset":
        invalid_casing = []
        for child in root:
            if _local_name(child.tag) != "url":
                continue
            loc = _loc_text(child)
            if not loc:
                continue
            rel = relative_path(loc)
            if rel != rel.lower():
                invalid_casing.append(loc)
            urls.append(loc)

        if invalid_casing:
            lines = [
                f"Sitemap validation error in `{path}`:",
                f"- {len(invalid_casing)} URL(s) are not lowercase, which may cause indexing issues:",
            ]
            lines.extend(f"   - {url}" for url in invalid_casing)
            raise RouteDiscoveryError("\n".join(lines))
    else:
        logger.warning(f"[ROUTES] Unrecognized sitemap root <{kind}> in {path}")

    return urls


def discover_routes(folder) -> List[str]:
    """
    Discover every route of the app published in ``folder``.

    Returns:
        Relative paths (no leading slash), deduplicated, in first-seen order
    """
    folder = Path(folder)
    validate_folder(folder)

    sitemap_urls = parse_robots_sitemaps(folder / "robots.txt")
    if not sitemap_urls:
        raise RouteDiscoveryError("No sitemaps found in robots.txt.")
    logger.info(f"[ROUTES] Found {len(sitemap_urls)} sitemap(s) in robots.txt")

    seen_sitemaps: Set[Path] = set()
    routes: List[str] = []
    known: Set[str] = set()
    for sitemap_url in sitemap_urls:
        for url in parse_sitemap(folder, sitemap_url, seen_sitemaps):
            route = relative_path(url)
            if route not in known:
                known.add(route)
                routes.append(route)

    if not routes:
        raise RouteDiscoveryError("No valid URLs found in any sitemap.")

    logger.info(f"[ROUTES] Total routes discovered: {len(routes)}")
    return routes
