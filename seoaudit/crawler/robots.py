"""
Fetches and parses robots.txt: access rules for the crawler and declared
sitemaps for the validator.
"""
from __future__ import annotations

import logging
from typing import Optional
from urllib.parse import urlparse

import requests

from seoaudit.config import ANALYZER_BOT_USER_AGENT, VALIDATOR_TIMEOUT
from seoaudit.models import RobotsData

logger = logging.getLogger(__name__)


def build_robots_url(base_url: str) -> str:
    parsed = urlparse(base_url)
    return f"{parsed.scheme}://{parsed.netloc}/robots.txt"


def fetch_and_parse_robots(
    base_url: str,
    session: requests.Session,
    timeout: float = VALIDATOR_TIMEOUT,
    user_agent: Optional[str] = ANALYZER_BOT_USER_AGENT,
) -> RobotsData:
    """Fetch /robots.txt and return a populated RobotsData; never raises on network errors."""
    robots_url = build_robots_url(base_url)
    data = RobotsData(url=robots_url, exists=False)
    headers = {"User-Agent": user_agent} if user_agent else None

    try:
        resp = session.get(robots_url, headers=headers, timeout=timeout, allow_redirects=True)
        data.status_code = resp.status_code
        if resp.status_code == 200:
            data.exists = True
            data.raw_text = resp.text
            parse_robots(data)
        elif resp.status_code != 404:
            data.parse_errors.append(f"robots.txt returned HTTP {resp.status_code}")
    except requests.RequestException as exc:
        logger.warning("Failed to fetch %s: %s", robots_url, exc)
        data.parse_errors.append(f"Failed to fetch robots.txt: {exc}")

    return data


def parse_robots(data: RobotsData) -> RobotsData:
    """Parse robots.txt raw text into allow/disallow rules and sitemap URLs."""
    current_agents: list[str] = []
    in_rules = False

    for raw_line in data.raw_text.splitlines():
        line = raw_line.split("#", 1)[0].strip()
        if not line:
            continue

        if ":" not in line:
            data.parse_errors.append(f"Invalid line (no colon): {line!r}")
            continue

        directive, _, value = line.partition(":")
        directive = directive.strip().lower()
        value = value.strip()

        if directive == "user-agent":
            # a user-agent line after rules starts a new group
            if in_rules:
                current_agents = []
                in_rules = False
            current_agents.append(value)
        elif directive in ("disallow", "allow"):
            in_rules = True
            rules = data.disallow_rules if directive == "disallow" else data.allow_rules
            for agent in current_agents:
                rules.append({"agent": agent, "path": value})
        elif directive == "crawl-delay":
            in_rules = True
            try:
                data.crawl_delay = float(value)
            except ValueError:
                data.parse_errors.append(f"Invalid crawl-delay value: {value!r}")
        elif directive == "sitemap":
            if value:
                data.sitemap_urls.append(value)

    return data


def is_url_allowed(url: str, robots_data: RobotsData, user_agent: str = "*") -> bool:
    """
    Check whether a URL is allowed for the given user-agent.
    Longest matching path wins; Allow wins ties.
    """
    if not robots_data.exists:
        return True

    parsed = urlparse(url)
    path = parsed.path or "/"
    if parsed.query:
        path = f"{path}?{parsed.query}"

    agent_token = user_agent.split("/", 1)[0].lower()
    specific = [r for r in robots_data.disallow_rules + robots_data.allow_rules
                if r["agent"].lower() == agent_token]
    agents = {agent_token} if specific else {"*"}

    best_allow = _longest_match(path, robots_data.allow_rules, agents)
    best_disallow = _longest_match(path, robots_data.disallow_rules, agents)

    if best_disallow < 0:
        return True
    return best_allow >= best_disallow


def _longest_match(path: str, rules: list[dict], agents: set[str]) -> int:
    best = -1
    for rule in rules:
        if rule["agent"].lower() not in agents:
            continue
        rule_path = rule["path"]
        # Empty rule path matches nothing
        if not rule_path:
            continue
        if _path_matches(path, rule_path) and len(rule_path) > best:
            best = len(rule_path)
    return best


def _path_matches(path: str, rule_path: str) -> bool:
    anchored = rule_path.endswith("$")
    pattern = rule_path[:-1] if anchored else rule_path
    if "*" not in pattern:
        return path == pattern if anchored else path.startswith(pattern)

    pieces = pattern.split("*")
    if not path.startswith(pieces[0]):
        return False
    pos = len(pieces[0])
    for piece in pieces[1:]:
        idx = path.find(piece, pos)
        if idx < 0:
            return False
        pos = idx + len(piece)
    return not anchored or path.endswith(pieces[-1])
