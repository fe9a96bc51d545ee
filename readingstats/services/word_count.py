"""Word count service - content metrics for story text (Latin and Arabic scripts)."""

import hashlib
import logging
import math
import re
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from readingstats.core.cache import CacheBackend
from readingstats.core.exceptions import NotFoundError, ValidationError
from readingstats.models.story import Story

logger = logging.getLogger(__name__)


# =============================================================================
# CONSTANTS
# =============================================================================

# Words per minute
READING_SPEEDS = {
    "slow": 200,
    "average": 250,
    "fast": 300,
}
DEFAULT_READING_SPEED = "average"

# Upper bound (inclusive) of each word-count bucket; None = unbounded
CONTENT_LEVEL_BUCKETS = [
    ("beginner", 500),
    ("intermediate", 1500),
    ("advanced", None),
]
CONTENT_LEVELS = [name for name, _ in CONTENT_LEVEL_BUCKETS]

PROMOTE_ABOVE = 0.7
DEMOTE_BELOW = 0.3

DEFAULT_TARGET_WORDS = 1000

# Longest story text accepted for analysis or storage, in characters
MAX_CONTENT_LENGTH = 100_000

_BLOCK_TAG_RE = re.compile(r"</(?:p|div|li|blockquote|h[1-6])\s*>|<br\s*/?>", re.IGNORECASE)
_TAG_RE = re.compile(r"<[^>]+>")
# Everything except word characters, whitespace, sentence terminators,
# Arabic comma/semicolon, intra-word apostrophes/hyphens and Arabic script.
_PUNCT_RE = re.compile(r"[^\w\s.!?\u061F\u0964\u060C\u061B'\-\u0600-\u06FF]")
_WHITESPACE_RE = re.compile(r"\s+")
_PARAGRAPH_RE = re.compile(r"\n\s*\n")
_SENTENCE_RE = re.compile(r"[.!?\u061F\u0964]")
_LATIN_WORD_RE = re.compile(r"[A-Za-z]+(?:['-][A-Za-z]+)*")
# Arabic block minus its comma, semicolon and question mark
_ARABIC_RUN_RE = re.compile(r"[\u0600-\u060B\u060D-\u061A\u061C-\u061E\u0620-\u06FF]+")


# =============================================================================
# TEXT HELPERS
# =============================================================================

def strip_markup(text: str) -> str:
    """Remove HTML tags, turning block-level closers into paragraph breaks."""
    text = _BLOCK_TAG_RE.sub("\n\n", text)
    return _TAG_RE.sub("", text)


def clean_content(text: str) -> str:
    """Strip markup and stray punctuation, collapse whitespace."""
    text = _PUNCT_RE.sub("", strip_markup(text))
    return _WHITESPACE_RE.sub(" ", text).strip()


def tokenize(cleaned: str) -> list[str]:
    """Latin words plus one token per maximal run of Arabic script."""
    return _LATIN_WORD_RE.findall(cleaned) + _ARABIC_RUN_RE.findall(cleaned)


def count_words(cleaned: str) -> int:
    if not cleaned:
        return 0
    return max(1, len(tokenize(cleaned)))


def count_sentences(cleaned: str) -> int:
    return sum(1 for piece in _SENTENCE_RE.split(cleaned) if piece.strip())


def count_paragraphs(text: str) -> int:
    """Count blank-line separated blocks of tag-stripped (uncollapsed) text."""
    return sum(1 for block in _PARAGRAPH_RE.split(text.strip()) if block.strip())


def content_hash(text: str) -> str:
    return hashlib.md5(text.encode("utf-8")).hexdigest()


# =============================================================================
# SCORING
# =============================================================================

def reading_speed_wpm(speed: str = DEFAULT_READING_SPEED) -> int:
    try:
        return READING_SPEEDS[speed]
    except KeyError:
        raise ValidationError(
            f"Unknown reading speed '{speed}'",
            details={"allowed": sorted(READING_SPEEDS)},
        )


def estimate_reading_time(word_count: int, speed: str = DEFAULT_READING_SPEED) -> int:
    """Minutes to read ``word_count`` words, never less than one."""
    return max(1, math.ceil(word_count / reading_speed_wpm(speed)))


def complexity_score(
    avg_sentence_length: float,
    avg_word_length: float,
    paragraph_density: float,
    unique_ratio: float,
) -> float:
    """
    Stepwise complexity in [0, 1].

    Each factor contributes a fixed amount once it crosses a threshold.
    """
    score = 0.0

    if avg_sentence_length > 20:
        score += 0.3
    elif avg_sentence_length > 15:
        score += 0.2
    elif avg_sentence_length > 10:
        score += 0.1

    if avg_word_length > 6:
        score += 0.2
    elif avg_word_length > 5:
        score += 0.1

    if paragraph_density > 100:
        score += 0.2
    elif paragraph_density > 75:
        score += 0.1

    if unique_ratio > 0.8:
        score += 0.3
    elif unique_ratio > 0.6:
        score += 0.2
    elif unique_ratio > 0.4:
        score += 0.1

    # Rounded so float drift never pushes a sum across 0.3/0.7
    return round(min(1.0, score), 2)


def level_for_word_count(word_count: int) -> str:
    for name, upper in CONTENT_LEVEL_BUCKETS:
        if upper is None or word_count <= upper:
            return name
    return CONTENT_LEVELS[-1]


def classify_reading_level(word_count: int, complexity: float) -> str:
    """Bucket by word count, then shift one level on very high/low complexity."""
    index = CONTENT_LEVELS.index(level_for_word_count(word_count))
    if complexity > PROMOTE_ABOVE:
        index = min(index + 1, len(CONTENT_LEVELS) - 1)
    elif complexity < DEMOTE_BELOW:
        index = max(index - 1, 0)
    return CONTENT_LEVELS[index]


def readability_score(word_count: int, sentence_count: int, complexity: float) -> float:
    if word_count == 0:
        return 0.0
    words_per_sentence = word_count / max(sentence_count, 1)
    score = 100 - 1.015 * words_per_sentence - 84.6 * complexity
    return max(0.0, min(100.0, round(score, 1)))


def content_density(cleaned: str) -> float:
    """Percentage of non-whitespace characters."""
    if not cleaned:
        return 0.0
    whitespace = cleaned.count(" ") + cleaned.count("\n")
    return round((1 - whitespace / len(cleaned)) * 100, 1)


def empty_analysis() -> dict[str, Any]:
    return {
        "word_count": 0,
        "character_count": 0,
        "paragraph_count": 0,
        "sentence_count": 0,
        "reading_level": "intermediate",
        "estimated_reading_time_minutes": 1,
        "complexity_score": 0.0,
        "readability_score": 0.0,
        "average_words_per_sentence": 0.0,
        "average_words_per_paragraph": 0.0,
        "average_characters_per_word": 0.0,
        "unique_words_count": 0,
        "unique_words_ratio": 0.0,
        "content_density": 0.0,
    }


def analyze(text: str, speed: str = DEFAULT_READING_SPEED) -> dict[str, Any]:
    """Compute content metrics for ``text``. Pure and deterministic."""
    wpm = reading_speed_wpm(speed)
    cleaned = clean_content(text or "")
    if not cleaned:
        return empty_analysis()

    stripped = _PUNCT_RE.sub("", strip_markup(text))
    tokens = tokenize(cleaned)
    word_count = count_words(cleaned)
    character_count = len(cleaned)
    paragraph_count = count_paragraphs(stripped)
    sentence_count = count_sentences(cleaned)

    avg_per_sentence = round(word_count / sentence_count, 1) if sentence_count else 0.0
    avg_per_paragraph = round(word_count / paragraph_count, 1) if paragraph_count else 0.0
    avg_chars = round(character_count / word_count, 1) if word_count else 0.0

    unique_count = len({token.lower() for token in tokens})
    unique_ratio = round(unique_count / len(tokens), 2) if tokens else 0.0

    complexity = complexity_score(avg_per_sentence, avg_chars, avg_per_paragraph, unique_ratio)

    return {
        "word_count": word_count,
        "character_count": character_count,
        "paragraph_count": paragraph_count,
        "sentence_count": sentence_count,
        "reading_level": classify_reading_level(word_count, complexity),
        "estimated_reading_time_minutes": max(1, math.ceil(word_count / wpm)),
        "complexity_score": complexity,
        "readability_score": readability_score(word_count, sentence_count, complexity),
        "average_words_per_sentence": avg_per_sentence,
        "average_words_per_paragraph": avg_per_paragraph,
        "average_characters_per_word": avg_chars,
        "unique_words_count": unique_count,
        "unique_words_ratio": unique_ratio,
        "content_density": content_density(cleaned),
    }


# =============================================================================
# ANALYZER SERVICE
# =============================================================================

class WordCountAnalyzer:
    """Content analysis with optional memoization keyed by content hash."""

    def __init__(self, cache: CacheBackend | None = None, ttl: int | None = None):
        self.cache = cache
        self.ttl = ttl

    def analyze(self, text: str, speed: str = DEFAULT_READING_SPEED) -> dict[str, Any]:
        return analyze(text, speed)

    async def analyze_cached(
        self, text: str, speed: str = DEFAULT_READING_SPEED
    ) -> dict[str, Any]:
        """Same as ``analyze`` but memoized through the cache when one is set."""
        cleaned = clean_content(text or "")
        if self.cache is None or not cleaned:
            return analyze(text, speed)

        key = f"content:{content_hash(text)}:{speed}"

        async def compute() -> dict[str, Any]:
            return analyze(text, speed)

        return await self.cache.remember(key, self.ttl, compute)

    def analyze_batch(self, items: dict[str, str]) -> dict[str, dict[str, Any]]:
        """Analyze several texts; a failing item yields the empty analysis."""
        results: dict[str, dict[str, Any]] = {}
        for key, text in items.items():
            try:
                results[key] = analyze(text)
            except Exception as e:
                logger.warning("Content analysis failed for batch item %s: %s", key, e)
                results[key] = empty_analysis()
        return results

    def content_progress(
        self, text: str, target_words: int = DEFAULT_TARGET_WORDS
    ) -> dict[str, Any]:
        """Progress of a draft towards a target length, for the editor."""
        if target_words <= 0:
            raise ValidationError("target_words must be positive")

        analysis = analyze(text)
        words = analysis["word_count"]
        return {
            "current_words": words,
            "target_words": target_words,
            "progress_percentage": min(100.0, round(words / target_words * 100, 1)),
            "words_remaining": max(0, target_words - words),
            "reading_level": analysis["reading_level"],
            "estimated_reading_time_minutes": analysis["estimated_reading_time_minutes"],
            "is_target_met": words >= target_words,
        }


class StoryContentService:
    """Stores content metrics on stories when their text changes."""

    def __init__(self, db: AsyncSession, analyzer: WordCountAnalyzer | None = None):
        self.db = db
        self.analyzer = analyzer or WordCountAnalyzer()

    async def save_content(self, story_id: int, content: str) -> Story:
        if len(content) > MAX_CONTENT_LENGTH:
            raise ValidationError(
                f"Content exceeds {MAX_CONTENT_LENGTH} characters",
                details={"content_length": len(content)},
            )

        story = await self.db.get(Story, story_id)
        if story is None:
            raise NotFoundError(f"Story {story_id} not found", details={"story_id": story_id})

        new_hash = content_hash(content)
        if story.content_hash == new_hash:
            logger.debug("Story %d content unchanged, metrics kept", story_id)
            return story

        analysis = self.analyzer.analyze(content)
        story.content = content
        story.content_hash = new_hash
        story.word_count = analysis["word_count"]
        story.reading_level = analysis["reading_level"]
        story.reading_time_minutes = analysis["estimated_reading_time_minutes"]
        story.complexity_score = analysis["complexity_score"]

        await self.db.commit()
        await self.db.refresh(story)
        logger.info(
            "Story %d metrics updated: %d words, level %s",
            story_id, story.word_count, story.reading_level,
        )
        return story
