"""
Snapshot Materialization
========================
Writes captured markup next to the published assets and generates the
``_headers`` / ``_redirects`` rule files static hosts read.

Output layout::

    <folder>/<route>/index.html      one per route
    <folder>/index/index.html        the root route
    <folder>/_headers                no-store cache rules
    <folder>/_redirects              casing / trailing-slash rewrites
"""

import logging
from collections import OrderedDict
from pathlib import Path
from typing import Iterable, List, Sequence

from .protocol import SnapshotRecord

logger = logging.getLogger(__name__)

_ROOT_ALIASES = {"", "/", "index", "index.html"}


def snapshot_file(folder: Path, route: str) -> Path:
    """Where the snapshot for ``route`` is written."""
    route = (route or "").strip().strip("/")
    if route in _ROOT_ALIASES:
        return folder / "index" / "index.html"
    return folder.joinpath(*route.split("/")) / "index.html"


def save_snapshots(folder, records: Iterable[SnapshotRecord]) -> List[Path]:
    """Write every record; returns the written paths in record order."""
    folder = Path(folder)
    written = []
    for record in records:
        target = snapshot_file(folder, record.route)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(record.markup, encoding="utf-8")
        logger.info(f"[MATERIALIZE] Saved to: {target}")
        written.append(target)
    return written


def to_upper_camel_case(value: str) -> str:
    """``about-us/team`` → ``About-Us/Team``."""
    out = []
    capitalize_next = True
    for ch in value:
        if ch in " /-":
            out.append(ch)
            capitalize_next = True
        elif capitalize_next:
            out.append(ch.upper())
            capitalize_next = False
        else:
            out.append(ch.lower())
    return "".join(out)


def _normalized_routes(routes: Sequence[str]) -> List[str]:
    unique = OrderedDict()
    for route in routes:
        clean = (route or "").strip().strip("/")
        if not clean:
            continue
        unique.setdefault(clean.lower(), clean)
    return list(unique.values())


def _read_lines(path: Path) -> List[str]:
    if not path.exists():
        return []
    return path.read_text(encoding="utf-8").splitlines()


def _dedupe_case_insensitive(lines: Iterable[str]) -> List[str]:
    seen = set()
    out = []
    for line in lines:
        key = line.lower()
        if key in seen:
            continue
        seen.add(key)
        out.append(line)
    return out


def build_header_rules(routes: Sequence[str], existing: Sequence[str] = ()) -> List[str]:
    """
    New ``_headers`` blocks for ``routes``, skipping targets already present.

    Top-level segments shared by two or more routes get one wildcard rule
    instead of per-route rules.
    """
    targets = {line.strip().lower() for line in existing if line.strip() and not line.startswith(" ")}
    rules = []

    def add(target: str) -> None:
        if target.lower() in targets:
            return
        targets.add(target.lower())
        rules.append(f'{target}\n  Cache-Control: no-store\n  ETag: ""')

    add("/")
    add("/index.html")

    paths = _normalized_routes(routes)
    groups = OrderedDict()
    for path in paths:
        groups.setdefault(path.split("/")[0].lower(), []).append(path)
    wildcard = {segment for segment, members in groups.items() if len(members) >= 2}

    for segment in groups:
        if segment in wildcard:
            add(f"/{segment}/*")

    for path in paths:
        if path.split("/")[0].lower() in wildcard:
            continue
        add(f"/{path}")
        add(f"/{path}/")
    return rules


def build_redirect_rules(routes: Sequence[str], existing: Sequence[str] = ()) -> List[str]:
    """New ``_redirects`` lines (``200!`` rewrites) for ``routes``."""
    sources = set()
    for line in existing:
        parts = line.split()
        if parts:
            sources.add(parts[0].lower())

    rules = []
    for path in _normalized_routes(routes):
        lower = f"/{path.lower()}".rstrip("/")
        upper = f"/{to_upper_camel_case(path)}".rstrip("/")
        if lower == "/index.html":
            continue

        if upper.lower() not in sources:
            for variant in (lower, lower + "/"):
                if upper.lower() != variant.lower():
                    rules.append(f"{upper:<20} {variant} 200!")

        if (lower + "/") not in sources:
            rules.append(f"{lower:<20} {lower}/ 200!")
        if lower not in sources:
            rules.append(f"{lower + '/':<20} {lower} 200!")
    return rules


def update_rule_files(folder, routes: Sequence[str]) -> None:
    """Append header and redirect rules for ``routes`` to the folder's rule files."""
    folder = Path(folder)
    headers_path = folder / "_headers"
    redirects_path = folder / "_redirects"

    existing_headers = _read_lines(headers_path)
    existing_redirects = _read_lines(redirects_path)

    headers = existing_headers + build_header_rules(routes, existing_headers)
    redirects = _dedupe_case_insensitive(existing_redirects + build_redirect_rules(routes, existing_redirects))

    headers_path.write_text("\n".join(headers) + "\n", encoding="utf-8")
    redirects_path.write_text("\n".join(redirects) + "\n", encoding="utf-8")
    logger.info(
        f"[MATERIALIZE] Updated {headers_path.name} ({len(headers)} entries) "
        f"and {redirects_path.name} ({len(redirects)} entries)"
    )
