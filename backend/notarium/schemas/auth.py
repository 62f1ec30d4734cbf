"""
Notarium Backend — Auth Request/Response Schemas
==================================================

Request bodies for signup, login, profile edits and password changes.
Lengths mirror the columns in models/user.py. Business rules that need the
database or settings (duplicate email, valid class, admin domain) are
checked in AuthService and surface as 400/401/409 instead of 422.
"""

from typing import Optional

from pydantic import AliasChoices, BaseModel, EmailStr, Field

from notarium.schemas.user import UserResponse


class SignupRequest(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    email: EmailStr
    password: str = Field(min_length=8, max_length=128)
    user_class: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("class", "user_class")
    )


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=1, max_length=128)


class AdminLoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=1, max_length=128)
    user_class: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("class", "user_class")
    )


class ProfileUpdateRequest(BaseModel):
    """
    Partial profile update. Only fields present in the body are considered;
    `name` is accepted as an alias of `display_name`.
    """
    display_name: Optional[str] = Field(
        default=None,
        min_length=1,
        max_length=100,
        validation_alias=AliasChoices("display_name", "name"),
    )
    photo_url: Optional[str] = Field(default=None, max_length=2_000_000)
    email: Optional[EmailStr] = None
    user_class: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("class", "user_class")
    )
    description: Optional[str] = Field(default=None, max_length=500)


class ChangePasswordRequest(BaseModel):
    current_password: str = Field(
        min_length=1,
        max_length=128,
        validation_alias=AliasChoices("current_password", "currentPassword"),
    )
    new_password: str = Field(
        min_length=8,
        max_length=128,
        validation_alias=AliasChoices("new_password", "newPassword"),
    )


class AdminResetPasswordRequest(BaseModel):
    email: EmailStr
    new_password: str = Field(min_length=8, max_length=128)


class AuthResponse(BaseModel):
    success: bool = True
    token: str = Field(description="JWT bearer token, valid for 24 hours by default")
    user: UserResponse


class ProfileUpdateResponse(BaseModel):
    success: bool = True
    updated: bool
    user: UserResponse
