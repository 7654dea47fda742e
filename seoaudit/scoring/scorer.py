"""
Mobile-friendliness score calculator.

Scoring model:
- Start at 100 and deduct a fixed amount for each missing signal
  (viewport, description, title, structured data, responsive images,
  media queries, friendly URL).
- Touch-target and font-size issues cost a per-issue amount, each capped.
- Serving different HTML to different devices earns a small bonus.
- The result is rounded and clamped to 0–100.
"""
from __future__ import annotations

from seoaudit.config import (
    FONT_SIZE_MAX_DEDUCTION,
    FONT_SIZE_POINTS,
    MOBILE_SCORE_DEDUCTIONS,
    SERVER_RESPONSIVE_BONUS,
    TOUCH_TARGET_MAX_DEDUCTION,
    TOUCH_TARGET_POINTS,
)


def compute_mobile_score(
    *,
    viewport_meta: bool,
    meta_description: bool,
    title: bool,
    has_structured_data: bool,
    responsive_images: bool,
    css_media_queries: bool,
    touch_target_issues: int,
    font_size_issues: int,
    friendly_url: bool,
    server_responsive: bool,
) -> int:
    score = 100.0
    checks = {
        "viewport":          viewport_meta,
        "meta_description":  meta_description,
        "title":             title,
        "structured_data":   has_structured_data,
        "responsive_images": responsive_images,
        "media_queries":     css_media_queries,
        "friendly_url":      friendly_url,
    }
    for name, present in checks.items():
        if not present:
            score -= MOBILE_SCORE_DEDUCTIONS[name]

    score -= min(TOUCH_TARGET_MAX_DEDUCTION, max(0, touch_target_issues) * TOUCH_TARGET_POINTS)
    score -= min(FONT_SIZE_MAX_DEDUCTION, max(0, font_size_issues) * FONT_SIZE_POINTS)

    if server_responsive:
        score += SERVER_RESPONSIVE_BONUS

    return int(max(0, min(100, round(score))))


def score_label(score: float) -> str:
    if score >= 90:
        return "Excellent"
    elif score >= 75:
        return "Good"
    elif score >= 50:
        return "Needs Work"
    else:
        return "Poor"
