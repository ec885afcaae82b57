"""
API authentication for Meeting Roster.

Every directory endpoint acts for exactly one account: the owner of the
bearer token. The account id becomes the owner id of all reads and writes.

Token extraction order:
1. Authorization: Bearer <token> header
2. X-API-Token header
3. api_token query parameter (EventSource cannot set headers)

Usage:
    from api.auth import require_account

    @router.get("/members")
    def list_members(account: Account = Depends(require_account)):
        ...
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from api.response_models import (
    AccountModel,
    LoginRequest,
    MutationResponse,
    RegisterRequest,
    TokenResponse,
)
from api.services import Services, get_services
from roster.errors import AuthError, PendingApprovalError
from roster.models import Account
from roster.observability import set_account_id

logger = logging.getLogger(__name__)

# Security scheme for OpenAPI docs
security = HTTPBearer(auto_error=False)


def _get_token_from_request(request: Request) -> str | None:
    """
    Extract token from request.

    Checks in order:
    1. Authorization: Bearer <token> header
    2. X-API-Token header (alternative)
    3. api_token query parameter
    """
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        return auth_header[7:].strip() or None

    x_token = request.headers.get("X-API-Token")
    if x_token:
        return x_token

    query_token = request.query_params.get("api_token")
    if query_token:
        return query_token

    return None


async def require_account(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
    services: Services = Depends(get_services),
) -> Account:
    """
    Dependency that requires a valid session of an approved account.

    Raises HTTPException 401 (no/invalid/expired token) or 403 (not approved).
    Attaches request.state.account and tags the log context with the account id.
    """
    token = _get_token_from_request(request)
    if not token:
        logger.warning(f"Auth failed: no token provided for {request.url.path}")
        raise HTTPException(
            status_code=401,
            detail="Authentication required. Provide Bearer token in Authorization header.",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        account = services.accounts.authenticate(token)
    except PendingApprovalError as e:
        logger.warning(f"Auth failed: account not approved for {request.url.path}")
        raise HTTPException(status_code=403, detail=str(e)) from e
    except AuthError as e:
        logger.warning(f"Auth failed: {e} for {request.url.path}")
        raise HTTPException(
            status_code=401, detail=str(e), headers={"WWW-Authenticate": "Bearer"}
        ) from e

    request.state.account = account
    set_account_id(account.id)
    return account


async def require_admin(account: Account = Depends(require_account)) -> Account:
    """Dependency: an approved admin account."""
    if not account.is_admin:
        logger.warning(f"Admin endpoint refused for account {account.id}")
        raise HTTPException(status_code=403, detail="Administrator access required")
    return account


# ── Auth Router (register / login / logout) ──────────────────────────


auth_router = APIRouter(tags=["auth"])


@auth_router.post("/auth/register", response_model=AccountModel, status_code=201)
def register(body: RegisterRequest, services: Services = Depends(get_services)):
    """
    Create an account.

    The first account becomes an approved admin; later accounts wait for approval.
    """
    account = services.accounts.register(body.name, body.email, body.password)
    return AccountModel.model_validate(account.to_dict())


@auth_router.post("/auth/login", response_model=TokenResponse)
def login(body: LoginRequest, services: Services = Depends(get_services)):
    """Exchange e-mail and password for a bearer token."""
    account, token = services.accounts.login(body.email, body.password)
    return TokenResponse(token=token, account=AccountModel.model_validate(account.to_dict()))


@auth_router.post("/auth/logout", response_model=MutationResponse)
def logout(
    request: Request,
    account: Account = Depends(require_account),
    services: Services = Depends(get_services),
):
    revoked = services.accounts.logout(_get_token_from_request(request))
    logger.info(f"Account {account.id} signed out")
    return {"success": revoked}


@auth_router.get("/auth/me", response_model=AccountModel)
def me(account: Account = Depends(require_account)):
    return AccountModel.model_validate(account.to_dict())
