from fastapi import APIRouter

from readingstats.api.achievements import router as achievements_router
from readingstats.api.content import router as content_router
from readingstats.api.leaderboard import router as leaderboard_router
from readingstats.api.reading import router as reading_router

router = APIRouter()
router.include_router(reading_router)
router.include_router(achievements_router)
router.include_router(leaderboard_router)
router.include_router(content_router)


@router.get("/health")
async def health_check() -> dict[str, str]:
    """Check API health."""
    return {"status": "healthy"}
