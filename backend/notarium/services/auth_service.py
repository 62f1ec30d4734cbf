"""
Notarium Backend — Auth Service
=================================

What:  Signup, login, admin login and password management.
Why:   Keeps credential rules (hashing, duplicate emails, admin domain,
       suspension on login) out of the route handlers.
How:   bcrypt hashes via notarium.security, JWTs issued on success,
       AuthenticationError/ConflictError/AccountSuspendedError on failure.

Login failure messages are identical for unknown email and wrong password
so the endpoint cannot be used to discover registered addresses.
"""

import logging
from typing import Optional, Tuple

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from notarium.config import settings
from notarium.exceptions import (
    AuthenticationError,
    ConflictError,
    DatabaseError,
    NotFoundError,
    ValidationError,
)
from notarium.models.user import ROLE_ADMIN, ROLE_STUDENT, User
from notarium.security import create_access_token, hash_password, secrets_match, verify_password
from notarium.services.user_service import user_service

logger = logging.getLogger(__name__)

INVALID_CREDENTIALS = "Invalid email or password"


def issue_token(user: User) -> str:
    return create_access_token(user.id, user.email, user.role)


class AuthService:
    """
    Responsibilities:
        - signup(): new student account + token
        - login(): credential check, suspension gate, token
        - admin_login(): shared-secret admin access, creating or promoting
        - change_password() / reset_password()
    """

    async def signup(
        self,
        db: AsyncSession,
        name: str,
        email: str,
        password: str,
        user_class: Optional[str] = None,
    ) -> Tuple[User, str]:
        email = email.lower()
        user_class = user_service.validate_class(user_class)

        if await user_service.get_by_email(db, email) is not None:
            raise ConflictError(message="Email already registered")

        user = User(
            email=email,
            display_name=name.strip(),
            password_hash=hash_password(password),
            user_class=user_class,
            role=ROLE_STUDENT,
        )
        db.add(user)
        try:
            await db.flush()
        except IntegrityError:
            # Concurrent signup with the same email won the race
            raise ConflictError(message="Email already registered")
        except SQLAlchemyError as e:
            logger.error("Signup failed for %s: %s", email, str(e), exc_info=True)
            raise DatabaseError(message="Could not create your account. Please try again.")

        logger.info("New user registered: id=%d class=%s", user.id, user.user_class)
        return user, issue_token(user)

    async def login(self, db: AsyncSession, email: str, password: str) -> Tuple[User, str]:
        """
        Raises:
            AuthenticationError: unknown email or wrong password (401)
            AccountSuspendedError: active suspension (403)
        """
        user = await user_service.get_by_email(db, email)
        if user is None:
            logger.info("Login failed: unknown email")
            raise AuthenticationError(message=INVALID_CREDENTIALS)

        if not verify_password(password, user.password_hash):
            logger.info("Login failed: wrong password for user %d", user.id)
            raise AuthenticationError(message=INVALID_CREDENTIALS)

        if user_service.refresh_suspension(user):
            logger.info("Login refused: user %d is suspended", user.id)
            raise user_service.suspension_error(user)

        logger.info("Login successful for user %d", user.id)
        return user, issue_token(user)

    async def admin_login(
        self,
        db: AsyncSession,
        email: str,
        password: str,
        user_class: Optional[str] = None,
    ) -> Tuple[User, str]:
        """
        Admin access: the email must be on the admin domain and the password
        must equal ADMIN_PASSWORD. An unset ADMIN_PASSWORD disables this.

        The account is created on first login; an existing account with that
        email is promoted to admin.
        """
        email = email.lower()
        if not self.verify_admin_credentials(email, password):
            logger.warning("Admin login rejected for %s", email)
            raise AuthenticationError(message="Invalid admin credentials")

        classes = settings.valid_classes_list
        chosen_class = user_class or (classes[0] if classes else None)
        if chosen_class is not None and chosen_class not in classes:
            raise ValidationError(message="Invalid class value", field="class")

        admin = await user_service.get_by_email(db, email)
        if admin is None:
            admin = User(
                email=email,
                display_name="Admin",
                password_hash=hash_password(password),
                user_class=chosen_class,
                role=ROLE_ADMIN,
            )
            db.add(admin)
            logger.info("Creating admin account for %s", email)
        else:
            admin.role = ROLE_ADMIN
            admin.user_class = chosen_class
            logger.info("Promoting existing user %d to admin", admin.id)

        try:
            await db.flush()
        except SQLAlchemyError as e:
            logger.error("Admin login persistence failed: %s", str(e), exc_info=True)
            raise DatabaseError(message="Could not complete admin login. Please try again.")

        return admin, issue_token(admin)

    def verify_admin_credentials(self, email: str, password: str) -> bool:
        """Checks the admin domain and shared password without touching the database."""
        return bool(
            settings.admin_password
            and email.lower().endswith(f"@{settings.admin_email_domain.lower()}")
            and secrets_match(password, settings.admin_password)
        )

    async def change_password(
        self, db: AsyncSession, user: User, current_password: str, new_password: str
    ) -> None:
        if not verify_password(current_password, user.password_hash):
            raise AuthenticationError(message="Current password is incorrect")
        user.password_hash = hash_password(new_password)
        await db.flush()
        logger.info("Password changed for user %d", user.id)

    async def reset_password(self, db: AsyncSession, email: str, new_password: str) -> User:
        """Admin-initiated reset; the user is not notified."""
        user = await user_service.get_by_email(db, email)
        if user is None:
            raise NotFoundError(resource="user", resource_id=email)
        user.password_hash = hash_password(new_password)
        await db.flush()
        logger.info("Password reset for user %d", user.id)
        return user


auth_service = AuthService()
