"""
Admin Router — account approval.

Only approved admins reach these endpoints. New accounts stay pending until
approved here; suspending an account locks out its open sessions at once.
"""

import logging

from fastapi import APIRouter, Depends

from api.auth import require_admin
from api.response_models import AccountModel, ListResponse, MutationResponse
from api.services import Services, get_services
from roster.models import Account

logger = logging.getLogger(__name__)

admin_router = APIRouter(tags=["Admin"])


def _account(account: Account) -> AccountModel:
    return AccountModel.model_validate(account.to_dict())


@admin_router.get("/accounts", response_model=ListResponse[AccountModel])
def list_accounts(
    admin: Account = Depends(require_admin), services: Services = Depends(get_services)
):
    """All accounts, pending approval first."""
    items = [_account(a) for a in services.accounts.list_accounts(admin)]
    return ListResponse[AccountModel](items=items, total=len(items))


@admin_router.post("/accounts/{account_id}/approve", response_model=AccountModel)
def approve_account(
    account_id: str,
    admin: Account = Depends(require_admin),
    services: Services = Depends(get_services),
):
    return _account(services.accounts.approve(admin, account_id))


@admin_router.post("/accounts/{account_id}/suspend", response_model=AccountModel)
def suspend_account(
    account_id: str,
    admin: Account = Depends(require_admin),
    services: Services = Depends(get_services),
):
    return _account(services.accounts.suspend(admin, account_id))


@admin_router.delete("/accounts/{account_id}", response_model=MutationResponse)
def delete_account(
    account_id: str,
    admin: Account = Depends(require_admin),
    services: Services = Depends(get_services),
):
    """Delete the account and its sessions. Its directory data is kept."""
    services.accounts.delete(admin, account_id)
    return {"success": True, "id": account_id}
