"""
Notarium Backend — Auth Route Handlers
========================================

What:  Signup, login, current user, profile and password endpoints.
How:   Thin handlers: parse the body, call AuthService/UserService, wrap
       the result. Credential endpoints are additionally throttled by
       RateLimitMiddleware (5 attempts per 15 minutes per IP).
"""

import logging

from fastapi import APIRouter

from notarium.dependencies import AdminUser, CurrentUser, DbSession, LenientUser
from notarium.schemas.auth import (
    AdminLoginRequest,
    AdminResetPasswordRequest,
    AuthResponse,
    ChangePasswordRequest,
    LoginRequest,
    ProfileUpdateRequest,
    ProfileUpdateResponse,
    SignupRequest,
)
from notarium.schemas.common import ErrorResponse, SuccessResponse
from notarium.schemas.user import UserEnvelope, UserResponse
from notarium.services.activity_service import ACTION_RESET_PASSWORD, TARGET_USER, activity_service
from notarium.services.auth_service import auth_service
from notarium.services.user_service import user_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["Auth"])


@router.post(
    "/signup",
    status_code=201,
    response_model=AuthResponse,
    responses={
        400: {"description": "Invalid class", "model": ErrorResponse},
        409: {"description": "Email already registered", "model": ErrorResponse},
        429: {"description": "Too many attempts", "model": ErrorResponse},
    },
    summary="Create a student account",
)
async def signup(body: SignupRequest, db: DbSession) -> AuthResponse:
    user, token = await auth_service.signup(
        db, name=body.name, email=str(body.email), password=body.password, user_class=body.user_class
    )
    return AuthResponse(token=token, user=UserResponse.from_user(user))


@router.post(
    "/login",
    response_model=AuthResponse,
    responses={
        401: {"description": "Invalid email or password", "model": ErrorResponse},
        403: {"description": "Account suspended", "model": ErrorResponse},
        429: {"description": "Too many attempts", "model": ErrorResponse},
    },
    summary="Log in with email and password",
)
async def login(body: LoginRequest, db: DbSession) -> AuthResponse:
    user, token = await auth_service.login(db, str(body.email), body.password)
    return AuthResponse(token=token, user=UserResponse.from_user(user))


@router.get(
    "/me",
    response_model=UserEnvelope,
    responses={401: {"description": "Not authenticated", "model": ErrorResponse}},
    summary="Current user, including suspension and warning state",
    description=(
        "Works while suspended so the client can show the suspension page. "
        "Each call counts as one view of a pending warning."
    ),
)
async def me(user: LenientUser, db: DbSession) -> UserEnvelope:
    # Count the view first; the dismissing view already reports the warning cleared
    user_service.record_warning_view(user)
    await db.flush()
    return UserEnvelope(user=UserResponse.from_user(user))


@router.put(
    "/profile",
    response_model=ProfileUpdateResponse,
    responses={
        400: {"description": "Invalid class", "model": ErrorResponse},
        409: {"description": "Email in use", "model": ErrorResponse},
    },
    summary="Update the current user's profile",
)
async def update_profile(
    body: ProfileUpdateRequest, user: CurrentUser, db: DbSession
) -> ProfileUpdateResponse:
    updated = await user_service.update_profile(db, user, body)
    return ProfileUpdateResponse(updated=updated, user=UserResponse.from_user(user))


@router.post(
    "/change-password",
    response_model=SuccessResponse,
    responses={401: {"description": "Current password is incorrect", "model": ErrorResponse}},
    summary="Change the current user's password",
)
async def change_password(
    body: ChangePasswordRequest, user: CurrentUser, db: DbSession
) -> SuccessResponse:
    await auth_service.change_password(db, user, body.current_password, body.new_password)
    return SuccessResponse(message="Password updated")


@router.post(
    "/admin-login",
    response_model=AuthResponse,
    responses={
        401: {"description": "Invalid admin credentials", "model": ErrorResponse},
        429: {"description": "Too many attempts", "model": ErrorResponse},
    },
    summary="Admin login with the shared admin password",
)
async def admin_login(body: AdminLoginRequest, db: DbSession) -> AuthResponse:
    admin, token = await auth_service.admin_login(
        db, str(body.email), body.password, body.user_class
    )
    return AuthResponse(token=token, user=UserResponse.from_user(admin))


@router.post(
    "/admin-reset-password",
    response_model=SuccessResponse,
    responses={
        403: {"description": "Admin access required", "model": ErrorResponse},
        404: {"description": "No such user", "model": ErrorResponse},
    },
    summary="Reset a user's password (admin only)",
)
async def admin_reset_password(
    body: AdminResetPasswordRequest, admin: AdminUser, db: DbSession
) -> SuccessResponse:
    user = await auth_service.reset_password(db, str(body.email), body.new_password)
    await activity_service.log_action(
        db, admin, ACTION_RESET_PASSWORD, TARGET_USER, user.id, {"email": user.email}
    )
    return SuccessResponse(message="Password reset")
