"""
Notarium Backend — Subjects and Leaderboard Routes
====================================================

GET /api/subjects     subject catalogue with per-viewer note counts
GET /api/leaderboard  students ranked by points
"""

from fastapi import APIRouter

from notarium.dependencies import CurrentUser, DbSession
from notarium.schemas.subject import SubjectListResponse
from notarium.schemas.user import LeaderboardResponse
from notarium.services.subject_service import subject_service
from notarium.services.user_service import user_service

router = APIRouter(prefix="/api", tags=["Subjects"])


@router.get(
    "/subjects",
    response_model=SubjectListResponse,
    summary="List subjects",
    description="Ordered by name. note_count only counts notes the caller can see.",
)
async def list_subjects(user: CurrentUser, db: DbSession) -> SubjectListResponse:
    return SubjectListResponse(subjects=await subject_service.list_subjects(db, user))


@router.get(
    "/leaderboard",
    response_model=LeaderboardResponse,
    summary="Student leaderboard",
    description="Points = notes + likes + 4.5 × admin upvotes (weights are configurable).",
)
async def leaderboard(user: CurrentUser, db: DbSession) -> LeaderboardResponse:
    return LeaderboardResponse(leaderboard=await user_service.leaderboard(db))
