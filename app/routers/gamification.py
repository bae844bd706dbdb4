"""Gamification endpoints."""

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from app.core.catalog import CatalogClient
from app.core.config import settings
from app.core.database import AsyncSessionLocal, get_db
from app.core.dependencies import get_catalog, get_current_user, require_privileged_user
from app.gamification.achievement_engine import AchievementEngine
from app.gamification.leaderboard import LeaderboardAggregator
from app.gamification.reconciliation import run_reconciliation_sweep
from app.schemas.gamification import AchievementResponse, LeaderboardEntryResponse, SweepReportResponse
from app.schemas.progress import EarnedAchievement

logger = structlog.get_logger()
router = APIRouter()


def get_sweep_session_factory():
    """Session factory the manual sweep opens per-user sessions from."""
    return AsyncSessionLocal


@router.get("/achievements", response_model=List[AchievementResponse])
async def list_achievements(
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    catalog: CatalogClient = Depends(get_catalog)
):
    """Get the achievement catalog."""
    engine = AchievementEngine(db, catalog)
    return await engine.list_achievements()


@router.get("/achievements/me", response_model=List[EarnedAchievement])
async def list_my_achievements(
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    catalog: CatalogClient = Depends(get_catalog)
):
    """Get achievements earned by the current user."""
    engine = AchievementEngine(db, catalog)
    return await engine.list_user_achievements(current_user["user_id"])


@router.get("/leaderboard", response_model=List[LeaderboardEntryResponse])
async def get_leaderboard(
    limit: Optional[int] = Query(None, ge=1, le=settings.LEADERBOARD_MAX_LIMIT),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Get the points leaderboard."""
    aggregator = LeaderboardAggregator(db)
    entries = await aggregator.get_leaderboard(limit or settings.LEADERBOARD_SIZE)
    return [entry.to_dict() for entry in entries]


@router.post("/achievements/reconcile", response_model=SweepReportResponse)
async def reconcile_achievements(
    current_user: dict = Depends(require_privileged_user),
    catalog: CatalogClient = Depends(get_catalog),
    session_factory=Depends(get_sweep_session_factory)
):
    """Re-evaluate achievements for every user now."""
    logger.info("Manual achievement sweep requested", requested_by=current_user["user_id"])
    report = await run_reconciliation_sweep(
        session_factory,
        catalog,
        settings.ACHIEVEMENT_SWEEP_CONCURRENCY
    )
    return {
        "users_evaluated": report.users_evaluated,
        "achievements_awarded": report.achievements_awarded,
        "failures": report.failures,
        "finished_at": datetime.utcnow()
    }
