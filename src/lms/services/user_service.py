"""
User identity management.

Maps an identity-provider profile (email + display name) to an internal
user, creating the user on first login. The role is decided once, at
creation, from the admin and instructor allow-lists.
"""

import logging
from collections.abc import Iterable

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from lms.errors import NotFoundError
from lms.models import Role, User, UserModel
from lms.utils.clock import Clock, utcnow
from lms.utils.ids import PREFIX_USER, generate_entity_id

logger = logging.getLogger(__name__)


def parse_email_list(value: str) -> frozenset[str]:
    """Parse a comma-separated allow-list: trimmed, lower-cased, empties dropped."""
    return frozenset(entry.strip().lower() for entry in value.split(",") if entry.strip())


def role_for_email(
    email: str, admin_emails: Iterable[str], instructor_emails: Iterable[str]
) -> Role:
    normalized = email.strip().lower()
    if normalized in admin_emails:
        return Role.ADMIN
    if normalized in instructor_emails:
        return Role.INSTRUCTOR
    return Role.STUDENT


async def get_or_create_user(
    session: AsyncSession,
    email: str,
    name: str,
    admin_emails: Iterable[str] = (),
    instructor_emails: Iterable[str] = (),
    clock: Clock = utcnow,
) -> User:
    """
    Return the user for ``email``, creating it on first login.

    Existing users keep their role; only ``updated_at`` is refreshed.
    When two first logins race, the loser re-reads the winner's row.

    Returns:
        The (possibly new) user
    """
    normalized = email.strip().lower()
    now = clock()

    user = await session.scalar(select(UserModel).where(UserModel.email == normalized))
    if user:
        user.updated_at = now
        await session.commit()
        return User.model_validate(user)

    role = role_for_email(normalized, admin_emails, instructor_emails)
    user = UserModel(
        id=generate_entity_id(PREFIX_USER),
        email=normalized,
        name=name or normalized,
        role=role.value,
        token_version=1,
        created_at=now,
        updated_at=now,
    )
    session.add(user)

    try:
        await session.commit()
    except IntegrityError:
        await session.rollback()
        user = await session.scalar(select(UserModel).where(UserModel.email == normalized))
        if user is None:
            raise
        return User.model_validate(user)

    logger.info("Created user %s with role %s", user.id, role.value)
    return User.model_validate(user)


async def get_user(session: AsyncSession, user_id: str) -> User | None:
    """Look up a user by id. Returns None if not found."""
    user = await session.get(UserModel, user_id)
    if not user:
        return None
    return User.model_validate(user)


async def get_user_by_email(session: AsyncSession, email: str) -> User | None:
    user = await session.scalar(
        select(UserModel).where(UserModel.email == email.strip().lower())
    )
    if not user:
        return None
    return User.model_validate(user)


async def bump_token_version(session: AsyncSession, user_id: str, clock: Clock = utcnow) -> int:
    """
    Invalidate every token issued to a user so far.

    Returns:
        The new token version

    Raises:
        NotFoundError: If the user does not exist
    """
    result = await session.execute(
        update(UserModel)
        .where(UserModel.id == user_id)
        .values(token_version=UserModel.token_version + 1, updated_at=clock())
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise NotFoundError(f"user does not exist: {user_id}")

    await session.commit()
    new_version = await session.scalar(
        select(UserModel.token_version).where(UserModel.id == user_id)
    )
    logger.info("Bumped token version of user %s to %d", user_id, new_version)
    return new_version
