"""Progress tracking endpoints."""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from app.core.catalog import CatalogClient
from app.core.database import get_db
from app.core.dependencies import get_catalog, get_current_user
from app.progress.progress_store import ProgressStore
from app.schemas.progress import CourseProgressResponse, ProgressOverview, ProgressUpdateRequest

logger = structlog.get_logger()
router = APIRouter()


@router.get("/overview", response_model=ProgressOverview)
async def get_progress_overview(
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    catalog: CatalogClient = Depends(get_catalog)
):
    """Aggregate stats, recent progress and earned achievements."""
    store = ProgressStore(db, catalog)
    return await store.get_overview(current_user["user_id"])


@router.get("/courses/{course_id}", response_model=CourseProgressResponse)
async def get_course_progress(
    course_id: str,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    catalog: CatalogClient = Depends(get_catalog)
):
    """Progress for one course; zero progress if never touched."""
    store = ProgressStore(db, catalog)
    return await store.get_progress(current_user["user_id"], course_id)


@router.put("/courses/{course_id}", response_model=CourseProgressResponse)
async def update_course_progress(
    course_id: str,
    update: ProgressUpdateRequest,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    catalog: CatalogClient = Depends(get_catalog)
):
    """Create or update progress for a course."""
    store = ProgressStore(db, catalog)
    return await store.upsert_progress(
        current_user["user_id"],
        course_id,
        update.percentage,
        update.completed
    )
