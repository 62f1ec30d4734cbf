"""
Notarium Backend — Admin Route Handlers
=========================================

What:  Moderation endpoints for notes and users, and the admin reports.
Who:   Admin dashboard. Every route requires an admin token (AdminUser);
       students get 403.

Moderation actions are recorded in the activity log by AdminService.
"""

from fastapi import APIRouter, Query, Response

from notarium.dependencies import AdminUser, DbSession
from notarium.schemas.admin import (
    ActivityLogEntry,
    ActivityLogResponse,
    AdminLikeResponse,
    AdminNoteListResponse,
    AdminVerifyRequest,
    AdminVerifyResponse,
    SuspendRequest,
    SuspendResponse,
    UsageStatsResponse,
    WarnRequest,
    WarnResponse,
)
from notarium.schemas.common import ErrorResponse, SuccessResponse
from notarium.schemas.note import AdminNoteUpdateRequest, NoteDeleteResponse, NoteEnvelope
from notarium.schemas.subject import SubjectSyncResponse
from notarium.schemas.user import AdminUserListResponse
from notarium.services.activity_service import ACTION_SYNC_COUNTS, TARGET_SUBJECT, activity_service
from notarium.services.admin_service import admin_service
from notarium.services.auth_service import auth_service
from notarium.services.subject_service import subject_service

router = APIRouter(
    prefix="/api/admin",
    tags=["Admin"],
    responses={403: {"description": "Admin access required", "model": ErrorResponse}},
)

NOT_FOUND = {404: {"description": "Not found", "model": ErrorResponse}}


@router.post("/verify", response_model=AdminVerifyResponse, summary="Check admin credentials")
async def verify(body: AdminVerifyRequest, admin: AdminUser) -> AdminVerifyResponse:
    ok = auth_service.verify_admin_credentials(str(body.email), body.password)
    return AdminVerifyResponse(success=ok, isAdmin=ok)


# ── Notes ─────────────────────────────────────────────────────────────────


@router.get("/notes", response_model=AdminNoteListResponse, summary="All notes, drafts included")
async def list_notes(admin: AdminUser, db: DbSession) -> AdminNoteListResponse:
    return AdminNoteListResponse(notes=await admin_service.list_notes(db, admin))


@router.post(
    "/notes/{note_id}/like",
    response_model=AdminLikeResponse,
    responses=NOT_FOUND,
    summary="Toggle this admin's upvote",
)
async def toggle_upvote(note_id: int, admin: AdminUser, db: DbSession) -> AdminLikeResponse:
    return AdminLikeResponse(liked=await admin_service.toggle_upvote(db, admin, note_id))


@router.post(
    "/upvote/{note_id}",
    response_model=SuccessResponse,
    responses=NOT_FOUND,
    summary="Upvote a note (no-op if already upvoted)",
)
async def upvote(note_id: int, admin: AdminUser, db: DbSession) -> SuccessResponse:
    added = await admin_service.upvote(db, admin, note_id)
    return SuccessResponse(message="Upvoted" if added else "Already upvoted")


@router.put("/notes/{note_id}", response_model=NoteEnvelope, responses=NOT_FOUND, summary="Edit any note")
async def edit_note(
    note_id: int, body: AdminNoteUpdateRequest, admin: AdminUser, db: DbSession
) -> NoteEnvelope:
    return NoteEnvelope(note=await admin_service.edit_note(db, admin, note_id, body))


@router.delete(
    "/notes/{note_id}", response_model=NoteDeleteResponse, responses=NOT_FOUND, summary="Delete any note"
)
async def delete_note(note_id: int, admin: AdminUser, db: DbSession) -> NoteDeleteResponse:
    return NoteDeleteResponse(points_deducted=await admin_service.delete_note(db, admin, note_id))


# ── Users ─────────────────────────────────────────────────────────────────


@router.get("/users", response_model=AdminUserListResponse, summary="All users with points")
async def list_users(admin: AdminUser, db: DbSession) -> AdminUserListResponse:
    return AdminUserListResponse(users=await admin_service.list_users(db))


@router.post(
    "/suspend/{user_id}", response_model=SuspendResponse, responses=NOT_FOUND, summary="Suspend a user"
)
async def suspend(user_id: int, body: SuspendRequest, admin: AdminUser, db: DbSession) -> SuspendResponse:
    user = await admin_service.suspend(db, admin, user_id, body.days, body.reason)
    return SuspendResponse(suspension_end_date=user.suspension_end_date, reason=user.suspension_reason)


@router.post(
    "/unsuspend/{user_id}", response_model=SuccessResponse, responses=NOT_FOUND, summary="Lift a suspension"
)
async def unsuspend(user_id: int, admin: AdminUser, db: DbSession) -> SuccessResponse:
    await admin_service.unsuspend(db, admin, user_id)
    return SuccessResponse(message="User unsuspended")


@router.post("/warn/{user_id}", response_model=WarnResponse, responses=NOT_FOUND, summary="Warn a user")
async def warn(user_id: int, body: WarnRequest, admin: AdminUser, db: DbSession) -> WarnResponse:
    user = await admin_service.warn(db, admin, user_id, body.message)
    return WarnResponse(message=user.warning_message)


@router.delete(
    "/user/{user_id}",
    response_model=SuccessResponse,
    responses=NOT_FOUND,
    summary="Delete a user and everything they own",
)
async def delete_user(user_id: int, admin: AdminUser, db: DbSession) -> SuccessResponse:
    await admin_service.delete_user(db, admin, user_id)
    return SuccessResponse(message="User deleted")


# ── Subjects & Reports ────────────────────────────────────────────────────


@router.post(
    "/subjects/sync-counts",
    response_model=SubjectSyncResponse,
    summary="Recompute every subject's note_count",
)
async def sync_subject_counts(admin: AdminUser, db: DbSession) -> SubjectSyncResponse:
    subjects = await subject_service.sync_note_counts(db)
    await activity_service.log_action(
        db, admin, ACTION_SYNC_COUNTS, TARGET_SUBJECT, None, {"subjects": len(subjects)}
    )
    return SubjectSyncResponse(subjects=subjects)


@router.get("/activity-log", response_model=ActivityLogResponse, summary="Moderation history, newest first")
async def activity_log(
    admin: AdminUser,
    db: DbSession,
    response: Response,
    limit: int = Query(default=50, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
) -> ActivityLogResponse:
    entries, total = await activity_service.list_entries(db, limit=limit, offset=offset)
    # Pagination UIs read the total from the header as well
    response.headers["X-Total-Count"] = str(total)
    return ActivityLogResponse(
        logs=[ActivityLogEntry.model_validate(entry) for entry in entries], total=total
    )


@router.get("/usage-stats", response_model=UsageStatsResponse, summary="Usage report")
async def usage_stats(admin: AdminUser, db: DbSession) -> UsageStatsResponse:
    return await admin_service.usage_stats(db)
