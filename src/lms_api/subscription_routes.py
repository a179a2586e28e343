"""
Subscription endpoints.

GET  /subscription/me    - Plan, limits, live usage and soft-limit overage
POST /subscription/plan  - Admin-only plan change for an explicit user
"""

import logging

from fastapi import APIRouter, Depends

from lms.models import PlanChange, Principal
from lms.services.rbac import Operation
from lms_api.auth import get_principal, require_operation
from lms_api.dependencies import get_services

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/subscription", tags=["subscription"])


@router.get("/me")
async def subscription_me(principal: Principal = Depends(get_principal)):
    status = await get_services().subscriptions.status(principal.id)
    return status.model_dump(mode="json", by_alias=True)


@router.post("/plan")
async def change_plan(
    data: PlanChange,
    principal: Principal = Depends(require_operation(Operation.CHANGE_PLAN)),
):
    subscription = await get_services().subscriptions.change_plan(principal, data.user_id, data.plan)
    return subscription.model_dump(mode="json", by_alias=True)
