"""
Site architecture: depth grouping of the crawl graph and link-graph metrics
(in/out degree, orphans, branching factor).
"""
from __future__ import annotations

import logging
from collections import deque
from typing import Optional

from seoaudit.config import TOP_LINKED_PAGES, UNREACHABLE_LEVEL
from seoaudit.models import (
    ArchitectureAnalysis,
    ArchitectureDetails,
    ArchitectureMetrics,
    CrawlGraph,
    TopLinkedPage,
)

logger = logging.getLogger(__name__)

EMPTY_SUMMARY = "No architecture data available"


def visualize(crawl_graph: CrawlGraph) -> dict[str, list[str]]:
    """
    Group crawled URLs by link depth from the first crawled URL.
    Depth keys are strings ("0", "1", ...); pages the root cannot reach
    through in-graph links go under "unreachable".
    """
    if not crawl_graph:
        return {}

    root = next(iter(crawl_graph))
    depths = {root: 0}
    queue = deque([root])
    while queue:
        url = queue.popleft()
        for link in crawl_graph[url].links:
            if link in crawl_graph and link not in depths:
                depths[link] = depths[url] + 1
                queue.append(link)

    groups: dict[str, list[str]] = {}
    for url, depth in depths.items():
        groups.setdefault(str(depth), []).append(url)
    unreachable = [url for url in crawl_graph if url not in depths]
    if unreachable:
        groups[UNREACHABLE_LEVEL] = unreachable
    return groups


def empty_analysis() -> ArchitectureAnalysis:
    return ArchitectureAnalysis(summary=EMPTY_SUMMARY)


def analyze_architecture(
    crawl_graph: Optional[CrawlGraph],
    depth_groups: Optional[dict[str, list[str]]],
) -> ArchitectureAnalysis:
    if not crawl_graph or depth_groups is None:
        return empty_analysis()

    in_degree: dict[str, int] = {url: 0 for url in crawl_graph}
    out_degree: dict[str, int] = {}
    for url, page in crawl_graph.items():
        in_graph = [link for link in page.links if link in crawl_graph]
        out_degree[url] = len(in_graph)
        for link in in_graph:
            in_degree[link] += 1

    total_pages = len(crawl_graph)
    levels = len(depth_groups)
    numeric_depths = [int(d) for d in depth_groups if d.lstrip("-").isdigit()]
    max_depth = max(numeric_depths) if numeric_depths else 0

    branching = [n for n in out_degree.values() if n > 0]
    avg_branching = sum(branching) / len(branching) if branching else 0.0

    homepage = next(iter(crawl_graph))
    orphan_pages = sum(1 for url, deg in in_degree.items() if deg == 0 and url != homepage)
    isolated_pages = sum(1 for url, deg in in_degree.items() if deg == 0 and out_degree[url] == 0)

    top_linked = [
        TopLinkedPage(url=url, in_degree=deg)
        for url, deg in sorted(in_degree.items(), key=lambda kv: -kv[1])[:TOP_LINKED_PAGES]
    ]

    parts = [
        f"Crawled {total_pages} pages across {levels} depth level(s) (max depth {max_depth}).",
        f"Average branching factor: {avg_branching:.2f}.",
    ]
    if orphan_pages > 0:
        parts.append(f"{orphan_pages} pages appear to be orphaned (no incoming links).")
    if isolated_pages > 0:
        parts.append(f"{isolated_pages} pages are isolated (no in/out links).")
    if top_linked:
        parts.append(f"Top linked pages: {', '.join(t.url for t in top_linked[:3])}.")

    logger.debug("Architecture: %d pages, %d levels, %d orphans", total_pages, levels, orphan_pages)
    return ArchitectureAnalysis(
        summary=" ".join(parts),
        metrics=ArchitectureMetrics(
            total_pages=total_pages,
            levels=levels,
            max_depth=max_depth,
            avg_branching_factor=round(avg_branching, 2),
            orphan_pages=orphan_pages,
            isolated_pages=isolated_pages,
            top_linked_pages=top_linked,
        ),
        details=ArchitectureDetails(in_degree=in_degree, out_degree=out_degree),
    )
