"""Content analysis endpoints for story authoring."""

import logging
from typing import Any, Literal

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from readingstats.api.deps import Caller, require_admin
from readingstats.core.cache import CacheBackend, get_cache
from readingstats.core.config import settings
from readingstats.core.database import get_db
from readingstats.services.content_review import (
    optimization_suggestions,
    reading_level_report,
    validate_content,
)
from readingstats.services.word_count import (
    MAX_CONTENT_LENGTH,
    StoryContentService,
    WordCountAnalyzer,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["content"])


# =============================================================================
# SCHEMAS
# =============================================================================

class AnalyzeRequest(BaseModel):
    """Text to analyze."""
    text: str = Field(max_length=MAX_CONTENT_LENGTH, description="Story text, HTML allowed")
    speed: Literal["slow", "average", "fast"] = "average"
    target_words: int | None = Field(default=None, gt=0, description="Include draft progress")


class ContentAnalysisResponse(BaseModel):
    word_count: int
    character_count: int
    paragraph_count: int
    sentence_count: int
    reading_level: str
    estimated_reading_time_minutes: int
    complexity_score: float
    readability_score: float
    average_words_per_sentence: float
    average_words_per_paragraph: float
    average_characters_per_word: float
    unique_words_count: int
    unique_words_ratio: float
    content_density: float
    progress: dict[str, Any] | None = None


class LevelSuggestionRequest(BaseModel):
    content: str = Field(max_length=MAX_CONTENT_LENGTH)
    target_level: Literal["beginner", "intermediate", "advanced"] = "intermediate"


class ValidateContentRequest(BaseModel):
    """Draft to check before publishing."""
    content: str = Field(max_length=MAX_CONTENT_LENGTH)
    title: str = Field(max_length=255)
    category_id: int | None = None


class OptimizationRequest(BaseModel):
    content: str = Field(max_length=MAX_CONTENT_LENGTH)
    target_audience: Literal["children", "teens", "adults", "seniors"] = "adults"
    content_type: Literal["story", "article", "tutorial", "review"] = "story"


class StoryContentRequest(BaseModel):
    content: str = Field(max_length=MAX_CONTENT_LENGTH)


class StoryMetricsResponse(BaseModel):
    """Content metrics stored on a story."""
    model_config = {"from_attributes": True}

    id: int
    title: str
    word_count: int
    reading_level: str
    reading_time_minutes: int
    complexity_score: float


# =============================================================================
# ENDPOINTS
# =============================================================================

@router.post("/content/analyze", response_model=ContentAnalysisResponse)
async def analyze_content(
    request: AnalyzeRequest,
    cache: CacheBackend = Depends(get_cache),
) -> dict[str, Any]:
    """Live analysis for the editor; memoized by content hash."""
    analyzer = WordCountAnalyzer(cache, settings.content_analysis_ttl)
    analysis = dict(await analyzer.analyze_cached(request.text, request.speed))
    if request.target_words:
        analysis["progress"] = analyzer.content_progress(request.text, request.target_words)
    return analysis


@router.post("/content/level-suggestions")
async def get_level_suggestions(request: LevelSuggestionRequest) -> dict[str, Any]:
    """Current vs target reading level, with edits that close the gap."""
    return reading_level_report(request.content, request.target_level)


@router.post("/content/validate")
async def validate_draft(request: ValidateContentRequest) -> dict[str, Any]:
    """Publication checks with an overall score."""
    validation = validate_content(request.content, request.title)
    return {
        "validation": validation,
        "is_valid": validation["is_valid"],
    }


@router.post("/content/optimize")
async def get_optimization_suggestions(request: OptimizationRequest) -> dict[str, Any]:
    """Tuning tips for an audience and content type."""
    analyzer = WordCountAnalyzer()
    analysis = analyzer.analyze(request.content)
    return {
        "suggestions": optimization_suggestions(
            analysis, request.target_audience, request.content_type
        ),
        "analysis": analysis,
    }


@router.post("/stories/{story_id}/content", response_model=StoryMetricsResponse)
async def save_story_content(
    story_id: int,
    request: StoryContentRequest,
    caller: Caller = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> Any:
    """Save story text and store its content metrics."""
    service = StoryContentService(db)
    story = await service.save_content(story_id, request.content)
    logger.info("Story %d content saved by member %d", story_id, caller.member_id)
    return story
