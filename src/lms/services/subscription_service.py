"""
Subscription Tracker.

Compares live usage from the Domain Store against the static plan table.
Enforcement is soft: nothing here blocks a write, responses are only
annotated with how far each limit is exceeded.
"""

import logging
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from lms.errors import AccessDeniedError, NotFoundError
from lms.models import (
    PLAN_LIMITS,
    Plan,
    Principal,
    Role,
    SoftLimit,
    Subscription,
    SubscriptionModel,
    SubscriptionStatus,
    UserModel,
)
from lms.services.domain_store import DomainStore
from lms.utils.clock import Clock, utcnow

logger = logging.getLogger(__name__)


class SubscriptionTracker:
    """
    Plan records plus soft-limit status.

    Usage:
        tracker = SubscriptionTracker(session_factory, store)
        status = await tracker.status(user_id)
        body = await tracker.annotate(course.model_dump(by_alias=True), user_id)
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        store: DomainStore,
        clock: Clock = utcnow,
    ):
        self._session_factory = session_factory
        self._store = store
        self._clock = clock

    async def get_or_create(self, user_id: str) -> Subscription:
        """Return the user's subscription, creating a ``free`` one on first access."""
        async with self._session_factory() as session:
            row = await session.get(SubscriptionModel, user_id)
            if row:
                return Subscription.model_validate(row)

            row = SubscriptionModel(user_id=user_id, plan=Plan.FREE.value, updated_at=self._clock())
            session.add(row)
            try:
                await session.commit()
            except IntegrityError:
                await session.rollback()
                row = await session.get(SubscriptionModel, user_id)
                if row is None:
                    raise NotFoundError(f"user does not exist: {user_id}")
            return Subscription.model_validate(row)

    async def current_plan(self, user_id: str) -> Plan:
        """Read the user's plan without creating a record; ``free`` when there is none."""
        async with self._session_factory() as session:
            plan = await session.scalar(select(SubscriptionModel.plan).where(SubscriptionModel.user_id == user_id))
        return Plan(plan) if plan else Plan.FREE

    async def status(self, user_id: str) -> SubscriptionStatus:
        plan = await self.current_plan(user_id)
        limits = PLAN_LIMITS[plan]
        usage = await self._store.usage_snapshot(user_id)

        return SubscriptionStatus(
            plan=plan,
            limits=limits,
            usage=usage,
            soft_limit=SoftLimit(
                created_courses_exceeded_by=max(usage.created_courses - limits.max_created_courses, 0),
                active_enrollments_exceeded_by=max(
                    usage.active_enrollments - limits.max_active_enrollments, 0
                ),
                owned_storage_bytes_exceeded_by=max(
                    usage.owned_storage_bytes - limits.max_owned_storage_bytes, 0
                ),
            ),
        )

    async def annotate(self, body: dict[str, Any], user_id: str) -> dict[str, Any]:
        """Attach ``subscription: {plan, softLimitExceeded, softLimit}`` to a response body."""
        status = await self.status(user_id)
        return {
            **body,
            "subscription": {
                "plan": status.plan.value,
                "softLimitExceeded": status.soft_limit.exceeded,
                "softLimit": status.soft_limit.model_dump(by_alias=True),
            },
        }

    async def change_plan(self, principal: Principal, user_id: str, plan: Plan) -> Subscription:
        """
        Set a user's plan. Only an Admin may do this, whatever the payload says.

        Raises:
            AccessDeniedError: Acting principal is not an Admin
            NotFoundError: Target user does not exist
        """
        if principal.role is not Role.ADMIN:
            raise AccessDeniedError("only admins may change plans")

        async with self._session_factory() as session:
            if not await session.get(UserModel, user_id):
                raise NotFoundError(f"user does not exist: {user_id}")

            row = await session.get(SubscriptionModel, user_id)
            if row is None:
                row = SubscriptionModel(user_id=user_id)
                session.add(row)
            row.plan = plan.value
            row.updated_at = self._clock()
            await session.commit()

            logger.info("Admin %s set plan of user %s to %s", principal.id, user_id, plan.value)
            return Subscription.model_validate(row)
