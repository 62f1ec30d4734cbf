"""
Notarium Backend — User Service Tests
=======================================

What we test:
    ✅ Expired suspensions clear themselves; active ones raise with details
    ✅ Warning auto-dismissal by view count and by age
    ✅ Profile edits: class validation, email conflicts, no-op edits
    ✅ Leaderboard ordering by points, admins excluded
"""

from datetime import timedelta

import pytest

from notarium.clock import utcnow
from notarium.config import settings
from notarium.exceptions import AccountSuspendedError, ConflictError, ValidationError
from notarium.models.user import User
from notarium.schemas.auth import ProfileUpdateRequest
from notarium.services.user_service import UserService


def make_user(**fields) -> User:
    values = {"id": 1, "email": "ani@example.com", "display_name": "Ani"}
    values.update(fields)
    return User(**values)


class TestSuspension:

    def setup_method(self):
        self.service = UserService()

    def test_not_suspended(self):
        assert self.service.refresh_suspension(make_user(suspended=False)) is False

    def test_expired_suspension_clears(self):
        user = make_user(
            suspended=True,
            suspension_end_date=utcnow() - timedelta(minutes=1),
            suspension_reason="Spam",
        )
        assert self.service.refresh_suspension(user) is False
        assert user.suspended is False
        assert user.suspension_end_date is None
        assert user.suspension_reason is None

    def test_naive_end_date_treated_as_utc(self):
        end = (utcnow() - timedelta(minutes=1)).replace(tzinfo=None)
        user = make_user(suspended=True, suspension_end_date=end)
        assert self.service.refresh_suspension(user) is False

    def test_active_suspension_raises_with_days_remaining(self):
        user = make_user(
            suspended=True,
            suspension_end_date=utcnow() + timedelta(days=2, hours=3),
            suspension_reason="Spam",
        )
        with pytest.raises(AccountSuspendedError) as exc_info:
            self.service.ensure_not_suspended(user)
        error = exc_info.value
        assert error.days_remaining == 3
        assert error.reason == "Spam"
        assert user.suspended is True

    def test_indefinite_suspension(self):
        user = make_user(suspended=True, suspension_end_date=None)
        with pytest.raises(AccountSuspendedError) as exc_info:
            self.service.ensure_not_suspended(user)
        assert exc_info.value.days_remaining == 0


class TestWarnings:

    def setup_method(self):
        self.service = UserService()

    def test_no_warning_is_noop(self):
        user = make_user(warning=False, warning_view_count=0)
        self.service.record_warning_view(user)
        assert user.warning_first_viewed is None

    def test_first_view_starts_tracking(self):
        user = make_user(warning=True, warning_message="Hati-hati", warning_view_count=0)
        self.service.record_warning_view(user)
        assert user.warning_first_viewed is not None
        assert user.warning_view_count == 1
        assert user.warning is True

    def test_cleared_after_max_views(self):
        user = make_user(warning=True, warning_message="Hati-hati", warning_view_count=0)
        for _ in range(settings.warning_max_views - 1):
            self.service.record_warning_view(user)
        assert user.warning is True
        assert user.warning_view_count == settings.warning_max_views - 1

        self.service.record_warning_view(user)
        assert user.warning is False
        assert user.warning_message is None
        assert user.warning_view_count == 0

    def test_cleared_after_dismiss_window(self):
        user = make_user(
            warning=True,
            warning_message="Hati-hati",
            warning_first_viewed=utcnow() - timedelta(hours=settings.warning_dismiss_hours + 1),
            warning_view_count=1,
        )
        self.service.record_warning_view(user)
        assert user.warning is False


class TestProfile:

    def setup_method(self):
        self.service = UserService()

    def test_validate_class(self):
        assert self.service.validate_class("10.2") == "10.2"
        assert self.service.validate_class("") is None
        with pytest.raises(ValidationError) as exc_info:
            self.service.validate_class("12.9")
        assert exc_info.value.field == "class"

    @pytest.mark.asyncio
    async def test_update_profile(self, db_session, student):
        data = ProfileUpdateRequest.model_validate({"name": " Ani Putri ", "class": "10.3"})

        assert await self.service.update_profile(db_session, student, data) is True
        assert student.display_name == "Ani Putri"
        assert student.user_class == "10.3"

    @pytest.mark.asyncio
    async def test_unchanged_profile_returns_false(self, db_session, student):
        data = ProfileUpdateRequest.model_validate({"name": "Ani", "email": "ANI@example.com"})
        assert await self.service.update_profile(db_session, student, data) is False

    @pytest.mark.asyncio
    async def test_email_taken_by_other_account(self, db_session, student, classmate):
        data = ProfileUpdateRequest(email=classmate.email)
        with pytest.raises(ConflictError):
            await self.service.update_profile(db_session, student, data)


class TestLeaderboard:

    @pytest.mark.asyncio
    async def test_ranked_by_points_without_admins(
        self, db_session, student, classmate, outsider, admin
    ):
        student.notes_uploaded = 1
        classmate.total_likes = 3
        outsider.total_admin_upvotes = 1
        admin.notes_uploaded = 50
        await db_session.flush()

        board = await UserService().leaderboard(db_session)

        assert [entry.display_name for entry in board] == ["Citra", "Budi", "Ani"]
        assert [entry.rank for entry in board] == [1, 2, 3]
        assert board[0].points == settings.points_per_admin_upvote

    @pytest.mark.asyncio
    async def test_ties_break_on_notes_uploaded(self, db_session, student, classmate):
        student.total_likes = 2
        classmate.notes_uploaded = 1
        classmate.total_likes = 1
        await db_session.flush()

        board = await UserService().leaderboard(db_session)

        assert [entry.display_name for entry in board] == ["Budi", "Ani"]
