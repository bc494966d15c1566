"""Heuristic content quality grading for ingested articles."""

from __future__ import annotations

from typing import List, Tuple

from pydantic import BaseModel, Field

from models import ContentQuality


class QualityRules(BaseModel):
    """Thresholds and keyword lists used by ``assess_quality``."""

    min_word_count: int = 50
    min_content_length: int = 200
    max_link_density: float = 0.3
    excluded_url_patterns: List[str] = Field(
        default_factory=lambda: [
            "sitemap", "robots.txt", "privacy", "terms", "legal",
            "/login", "/signup", "/cart",
            ".pdf", ".doc", ".docx", ".xls", ".xlsx", ".ppt", ".pptx",
            ".zip", ".rar", ".exe", ".dmg", ".iso",
        ]
    )
    quality_indicators: List[str] = Field(
        default_factory=lambda: [
            "article", "news", "story", "report", "analysis", "opinion", "interview",
            "review", "tutorial", "guide", "investigation", "feature", "editorial",
            "artikel", "nachrichten", "bericht", "analyse", "meinung", "anleitung",
            "leitfaden", "untersuchung", "leitartikel",
        ]
    )
    low_quality_indicators: List[str] = Field(
        default_factory=lambda: [
            "cookie", "consent", "advertisement", "sponsored", "promo", "login",
            "signup", "subscribe", "newsletter", "click here", "read more",
            "werbung", "gesponsert", "anmelden", "registrieren", "abonnieren", "hier klicken",
        ]
    )
    meaningful_patterns: List[str] = Field(
        default_factory=lambda: [
            "reports", "explains", "analyzes", "investigates", "describes", "discusses",
            "development", "situation", "event", "analysis", "commentary", "exclusive",
            "berichtet", "erklärt", "analysiert", "untersucht", "beschreibt", "entwicklung",
            "ereignis", "kommentar", "reportage",
        ]
    )
    empty_patterns: List[str] = Field(
        default_factory=lambda: [
            "follow us", "share this", "sign up", "log in", "create account", "no content",
            "nothing to see", "placeholder", "learn more", "find out more",
            "folgen sie uns", "teilen sie", "einloggen", "konto erstellen", "keine inhalte",
            "impressum", "datenschutz",
        ]
    )


DEFAULT_RULES = QualityRules()


def link_density(text: str) -> float:
    """Share of whitespace tokens that look like URLs."""
    tokens = str(text or "").split()
    if not tokens:
        return 0.0
    links = [token for token in tokens if "http" in token or token.startswith("www.")]
    return len(links) / len(tokens)


def _has_structure(text: str) -> bool:
    has_paragraphs = len(text.split("\n\n")) > 2
    has_headings = "#" in text or "**" in text
    has_lists = "- " in text or "* " in text or "1. " in text
    return has_paragraphs or has_headings or has_lists


def _contains_any(haystack: str, needles: List[str]) -> bool:
    return any(needle in haystack for needle in needles)


def assess_quality(
    url: str,
    title: str,
    text: str,
    word_count: int,
    rules: QualityRules = DEFAULT_RULES,
) -> Tuple[ContentQuality, str]:
    """Grade one article. Returns ``(grade, reason)``; never blocks persistence."""
    lowered_url = str(url or "").lower()
    lowered_title = str(title or "").lower()
    content = str(text or "")
    lowered = content.lower()

    if _contains_any(lowered_url, rules.excluded_url_patterns):
        return ContentQuality.EXCLUDED, "Technical/structural URL pattern excluded"

    if word_count < rules.min_word_count:
        return ContentQuality.LOW, f"Too few words ({word_count} < {rules.min_word_count})"

    if len(content) < rules.min_content_length:
        return ContentQuality.LOW, f"Content too short ({len(content)} < {rules.min_content_length} chars)"

    density = link_density(content)
    if density > rules.max_link_density:
        return (
            ContentQuality.LOW,
            f"High link density ({int(density * 100)}% > {int(rules.max_link_density * 100)}%)",
        )

    meaningful = _contains_any(lowered, rules.meaningful_patterns)
    empty = _contains_any(lowered, rules.empty_patterns)
    indicators = _contains_any(lowered_title, rules.quality_indicators) or _contains_any(
        lowered, rules.quality_indicators
    )
    low_indicators = _contains_any(lowered_title, rules.low_quality_indicators) or _contains_any(
        lowered, rules.low_quality_indicators
    )
    structured = _has_structure(content)

    if empty and not meaningful:
        return ContentQuality.LOW, "Contains empty content patterns"
    if low_indicators and not indicators and not meaningful:
        return ContentQuality.LOW, "Contains low-quality indicators without meaningful content"
    if not structured and not meaningful:
        return ContentQuality.LOW, "Lacks content structure and meaningful content"

    if meaningful and word_count > int(rules.min_word_count * 1.5):
        return ContentQuality.HIGH, "High-quality content with meaningful patterns"
    if indicators and word_count > rules.min_word_count * 2:
        return ContentQuality.HIGH, "High-quality content with good indicators"
    return ContentQuality.MEDIUM, "Standard quality content"
