"""Editorial feedback on story drafts: level suggestions, publication checks, tuning tips.

Everything here works on the metrics dict produced by ``word_count.analyze``.
"""

import logging
from typing import Any

from readingstats.core.exceptions import ValidationError
from readingstats.services.word_count import CONTENT_LEVELS, analyze

logger = logging.getLogger(__name__)


# =============================================================================
# CONSTANTS
# =============================================================================

DEFAULT_TARGET_LEVEL = "intermediate"

TARGET_AUDIENCES = ("children", "teens", "adults", "seniors")
CONTENT_TYPES = ("story", "article", "tutorial", "review")
DEFAULT_AUDIENCE = "adults"
DEFAULT_CONTENT_TYPE = "story"

# Minimum overall score for a draft to be publishable
PASSING_SCORE = 70

MIN_WORDS = 100
MIN_PARAGRAPHS = 3
TITLE_LENGTH = (10, 100)
SENTENCE_LENGTH = (10, 20)
READABLE_SCORE = 50


def _require_choice(name: str, value: str, allowed: tuple[str, ...] | list[str]) -> str:
    if value not in allowed:
        raise ValidationError(
            f"Unknown {name} '{value}'",
            details={name: value, "allowed": list(allowed)},
        )
    return value


# =============================================================================
# READING LEVEL SUGGESTIONS
# =============================================================================

def level_suggestions(analysis: dict[str, Any], target_level: str) -> list[dict[str, Any]]:
    """What to change so the draft lands on ``target_level``."""
    _require_choice("target_level", target_level, CONTENT_LEVELS)

    if analysis["reading_level"] == target_level:
        return [{
            "type": "success",
            "message": "Content is at the target reading level",
            "icon": "check-circle",
        }]

    words = analysis["word_count"]
    suggestions = []

    if target_level == "beginner":
        if words > 500:
            suggestions.append({
                "type": "warning",
                "message": "Consider reducing word count to 500 or fewer for beginner level",
                "icon": "edit",
                "action": "reduce_words",
            })
        if analysis["average_words_per_sentence"] > 15:
            suggestions.append({
                "type": "info",
                "message": "Use shorter sentences (10-15 words) for better readability",
                "icon": "type",
                "action": "shorten_sentences",
            })
    elif target_level == "intermediate":
        if words < 501 or words > 1500:
            suggestions.append({
                "type": "info",
                "message": "Intermediate level works best with 501-1500 words",
                "icon": "target",
                "action": "adjust_length",
            })
    else:
        if words < 1501:
            suggestions.append({
                "type": "info",
                "message": "Advanced level typically requires 1500+ words",
                "icon": "trending-up",
                "action": "expand_content",
            })
        if analysis["complexity_score"] < 0.5:
            suggestions.append({
                "type": "suggestion",
                "message": "Consider adding more complex vocabulary and sentence structures",
                "icon": "book",
                "action": "increase_complexity",
            })

    return suggestions


def reading_level_report(content: str, target_level: str = DEFAULT_TARGET_LEVEL) -> dict[str, Any]:
    analysis = analyze(content)
    return {
        "current_level": analysis["reading_level"],
        "target_level": target_level,
        "suggestions": level_suggestions(analysis, target_level),
        "analysis": analysis,
    }


# =============================================================================
# PUBLICATION CHECKS
# =============================================================================

def _check(status: str, message: str, score: int) -> dict[str, Any]:
    return {"status": status, "message": message, "score": score}


def validate_content(content: str, title: str) -> dict[str, Any]:
    """
    Score a draft out of 100 on length, readability, structure, title and
    sentence variety. A draft scoring PASSING_SCORE or more is valid.
    """
    analysis = analyze(content)
    checks: dict[str, dict[str, Any]] = {}
    recommendations: list[str] = []

    if analysis["word_count"] >= MIN_WORDS:
        checks["word_count"] = _check("pass", "Word count is adequate", 20)
    else:
        checks["word_count"] = _check(
            "fail", f"Content is too short (minimum {MIN_WORDS} words)", 0
        )
        recommendations.append("Add more content to reach minimum word count")

    if analysis["readability_score"] >= READABLE_SCORE:
        checks["readability"] = _check("pass", "Content is readable", 25)
    else:
        checks["readability"] = _check("warning", "Content might be difficult to read", 15)
        recommendations.append("Simplify sentences and vocabulary")

    if analysis["paragraph_count"] >= MIN_PARAGRAPHS:
        checks["structure"] = _check("pass", "Content has good paragraph structure", 20)
    else:
        checks["structure"] = _check("warning", "Content needs better paragraph structure", 10)
        recommendations.append("Break content into more paragraphs")

    shortest, longest = TITLE_LENGTH
    if shortest <= len(title.strip()) <= longest:
        checks["title"] = _check("pass", "Title length is appropriate", 15)
    else:
        checks["title"] = _check("fail", f"Title should be {shortest}-{longest} characters", 0)
        recommendations.append("Adjust title length")

    low, high = SENTENCE_LENGTH
    if low <= analysis["average_words_per_sentence"] <= high:
        checks["sentence_variety"] = _check("pass", "Good sentence length variety", 20)
    else:
        checks["sentence_variety"] = _check("warning", "Sentence length could be improved", 10)
        recommendations.append("Vary sentence lengths for better flow")

    overall = sum(check["score"] for check in checks.values())
    logger.debug("Content validation scored %d (%d words)", overall, analysis["word_count"])
    return {
        "checks": checks,
        "overall_score": overall,
        "recommendations": recommendations,
        "is_valid": overall >= PASSING_SCORE,
    }


# =============================================================================
# OPTIMIZATION SUGGESTIONS
# =============================================================================

def _tip(category: str, kind: str, message: str, priority: str) -> dict[str, Any]:
    return {"category": category, "type": kind, "message": message, "priority": priority}


def optimization_suggestions(
    analysis: dict[str, Any],
    target_audience: str = DEFAULT_AUDIENCE,
    content_type: str = DEFAULT_CONTENT_TYPE,
) -> list[dict[str, Any]]:
    """Audience, content-type and general tuning tips for a draft."""
    _require_choice("target_audience", target_audience, TARGET_AUDIENCES)
    _require_choice("content_type", content_type, CONTENT_TYPES)

    words = analysis["word_count"]
    tips = []

    if target_audience == "children":
        if words > 300:
            tips.append(_tip("Length", "warning",
                             "Consider shorter content for children (200-300 words)", "high"))
        if analysis["average_words_per_sentence"] > 10:
            tips.append(_tip("Readability", "info",
                             "Use shorter sentences (5-10 words) for children", "medium"))
    elif target_audience == "teens":
        if words > 800:
            tips.append(_tip("Length", "info", "Teen content works best under 800 words", "medium"))
    elif target_audience == "adults":
        if words < 400:
            tips.append(_tip("Length", "suggestion",
                             "Adult content can be longer for more depth", "low"))

    if content_type == "story":
        if analysis["paragraph_count"] < 5:
            tips.append(_tip("Structure", "info",
                             "Stories benefit from more paragraphs for pacing", "medium"))
    elif content_type == "tutorial":
        if analysis["sentence_count"] < 10:
            tips.append(_tip("Detail", "warning",
                             "Tutorials need more detailed explanations", "high"))

    if analysis["readability_score"] < 60:
        tips.append(_tip("Readability", "warning",
                         "Improve readability by simplifying complex sentences", "high"))
    if analysis["unique_words_ratio"] < 0.4:
        tips.append(_tip("Vocabulary", "suggestion", "Add more variety to vocabulary", "low"))

    return tips
