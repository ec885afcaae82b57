"""
Pydantic request/response models for API endpoints.

Wire format is camelCase (userId, handwrittenRequest, isGuest, ...) to match
the stored snapshot and the web client. Python-side field names stay
snake_case; both spellings are accepted on input.

Usage:
    from api.response_models import MemberModel, ListResponse

    @router.get("/members", response_model=ListResponse[MemberModel])
    def list_members(): ...
"""

from typing import Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

T = TypeVar("T")


class WireModel(BaseModel):
    """camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ==== List / Mutation Envelopes ====


class ListResponse(BaseModel, Generic[T]):
    """Standard list endpoint response."""

    items: list[T] = Field(default_factory=list, description="Result items")
    total: int = Field(description="Total count")


class MutationResponse(BaseModel):
    """Standard mutation result."""

    success: bool = Field(description="Whether the operation succeeded")

    model_config = {"extra": "allow"}


# ==== Directory ====


class ReferenceModel(WireModel):
    id: str
    date: str
    text: str


class MemberModel(WireModel):
    id: str
    user_id: str
    name: str
    company: str = ""
    sector: str = ""
    phone: str = ""
    created_at: str = ""
    references: list[ReferenceModel] = Field(default_factory=list)


class GuestModel(WireModel):
    id: str
    user_id: str
    name: str
    visit_date: str
    company: str = ""
    sector: str = ""
    phone: str = ""
    invited_by_member_id: str = ""
    invited_by_member_name: str = ""


class EntryModel(WireModel):
    """One extracted sheet row. Missing or null text fields mean empty."""

    name: str | None = ""
    company: str | None = ""
    sector: str | None = ""
    phone: str | None = ""
    handwritten_request: str | None = ""
    is_guest: bool = False
    invited_by_name: str | None = ""
    row_number: int | None = None


class SnapshotModel(WireModel):
    date: str
    entries: list[EntryModel] = Field(default_factory=list)
    updated_at: str = ""


class SnapshotRequestsModel(WireModel):
    """Last scan split into rows with and without a handwritten request."""

    date: str
    with_requests: list[EntryModel] = Field(default_factory=list)
    without_requests: list[EntryModel] = Field(default_factory=list)


# ==== Requests ====


class ScanRequest(WireModel):
    """A confirmed batch: meeting date plus the reviewed rows."""

    date: str = Field(description="Meeting date, YYYY-MM-DD")
    entries: list[EntryModel] = Field(default_factory=list)


class ProfileUpdateRequest(WireModel):
    """Only fields present in the body are changed."""

    name: str | None = None
    company: str | None = None
    sector: str | None = None
    phone: str | None = None


class ReferenceUpdateRequest(WireModel):
    text: str = ""


class EntryEditRequest(WireModel):
    field: str = Field(description="Wire name of the row field, e.g. handwrittenRequest")
    value: str | None = ""


# ==== Results ====


class RowOutcomeModel(WireModel):
    index: int
    name: str
    kind: str
    action: str
    entity_id: str | None = None
    reason: str | None = None


class ReconcileResponse(WireModel):
    owner_id: str
    date: str
    ok: bool
    snapshot_saved: bool
    members_created: list[str] = Field(default_factory=list)
    members_updated: list[str] = Field(default_factory=list)
    guests_created: list[str] = Field(default_factory=list)
    skipped: list[RowOutcomeModel] = Field(default_factory=list)
    failed: list[RowOutcomeModel] = Field(default_factory=list)
    outcomes: list[RowOutcomeModel] = Field(default_factory=list)


class EntryEditResponse(WireModel):
    action: str = Field(description="view_only | created | updated | unchanged | skipped")
    entry: EntryModel
    member: MemberModel | None = None


# ==== Accounts ====


class AccountModel(WireModel):
    id: str
    email: str
    name: str
    role: str
    is_approved: bool
    created_at: str = ""


class RegisterRequest(BaseModel):
    name: str
    email: str
    password: str


class LoginRequest(BaseModel):
    email: str
    password: str


class TokenResponse(BaseModel):
    """Bearer token plus the signed-in account."""

    token: str
    account: AccountModel

