"""
Notarium Backend — User Schemas
=================================

Public user representation, leaderboard rows and the admin user list.

The student's class is exposed as "class" on the wire; in Python it is
`user_class` because `class` is a keyword.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from notarium.models.user import User


class UserResponse(BaseModel):
    """
    What:  Everything the client needs about the signed-in user.
    Who:   Returned by signup, login, /me, profile update and admin login.

    Suspension and warning fields let the client route a suspended student
    to the suspension page and show a pending warning banner.
    """
    id: int
    email: str
    display_name: str
    user_class: Optional[str] = Field(default=None, serialization_alias="class")
    role: str
    photo_url: Optional[str] = None
    description: Optional[str] = None

    notes_uploaded: int = 0
    total_likes: int = 0
    total_admin_upvotes: int = 0
    points: float = Field(default=0, description="notes + likes + 4.5 × admin upvotes")

    suspended: bool = False
    suspension_end_date: Optional[datetime] = None
    suspension_reason: Optional[str] = None
    warning: bool = False
    warning_message: Optional[str] = None

    created_at: Optional[datetime] = None

    @classmethod
    def from_user(cls, user: User) -> "UserResponse":
        return cls(
            id=user.id,
            email=user.email,
            display_name=user.display_name,
            user_class=user.user_class,
            role=user.role,
            photo_url=user.photo_url,
            description=user.description,
            notes_uploaded=user.notes_uploaded,
            total_likes=user.total_likes,
            total_admin_upvotes=user.total_admin_upvotes,
            points=user.points,
            suspended=user.suspended,
            suspension_end_date=user.suspension_end_date,
            suspension_reason=user.suspension_reason,
            warning=user.warning,
            warning_message=user.warning_message,
            created_at=user.created_at,
        )


class UserEnvelope(BaseModel):
    user: UserResponse


class LeaderboardEntry(BaseModel):
    rank: int
    id: int
    display_name: str
    user_class: Optional[str] = Field(default=None, serialization_alias="class")
    photo_url: Optional[str] = None
    notes_uploaded: int
    total_likes: int
    total_admin_upvotes: int
    points: float


class LeaderboardResponse(BaseModel):
    leaderboard: List[LeaderboardEntry]


class AdminUserListResponse(BaseModel):
    users: List[UserResponse]
