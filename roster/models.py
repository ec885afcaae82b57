"""Entity classes for Members, References, Guests, scans and accounts.

Attributes are snake_case; to_dict()/from_dict() use the camelCase wire names
the extraction service and the UI speak (createdAt, handwrittenRequest, ...).
"""

import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone


def now_iso() -> str:
    """Current UTC time in ISO format."""
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z"


def new_id() -> str:
    return uuid.uuid4().hex


def _text(value) -> str:
    """Coerce an optional wire value to a string, keeping it raw."""
    if value is None:
        return ""
    return str(value)


_TRUE_SPELLINGS = frozenset(("true", "1", "yes", "y", "si", "sí"))


def _flag(value) -> bool:
    """Wire boolean. Strings are parsed by spelling, so "false" stays False."""
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() in _TRUE_SPELLINGS
    if isinstance(value, int | float):
        return value == 1
    return False


# ============================================================================
# REFERENCE
# ============================================================================


@dataclass(frozen=True)
class Reference:
    id: str
    date: str  # YYYY-MM-DD
    text: str

    def to_dict(self) -> dict:
        return {"id": self.id, "date": self.date, "text": self.text}

    @classmethod
    def from_dict(cls, data: dict) -> "Reference":
        return cls(id=data["id"], date=data["date"], text=data.get("text", ""))


# ============================================================================
# MEMBER
# ============================================================================


@dataclass(frozen=True)
class Member:
    id: str
    owner_id: str
    name: str
    company: str = ""
    sector: str = ""
    phone: str = ""
    created_at: str = ""
    references: tuple[Reference, ...] = ()

    def with_fields(self, **changes) -> "Member":
        return replace(self, **changes)

    def reference_for(self, date: str) -> Reference | None:
        for ref in self.references:
            if ref.date == date:
                return ref
        return None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "userId": self.owner_id,
            "name": self.name,
            "company": self.company,
            "sector": self.sector,
            "phone": self.phone,
            "createdAt": self.created_at,
            "references": [r.to_dict() for r in self.references],
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Member":
        return cls(
            id=data["id"],
            owner_id=data.get("userId", ""),
            name=data.get("name", ""),
            company=data.get("company", "") or "",
            sector=data.get("sector", "") or "",
            phone=data.get("phone", "") or "",
            created_at=data.get("createdAt", "") or "",
            references=tuple(Reference.from_dict(r) for r in data.get("references", [])),
        )


# ============================================================================
# GUEST
# ============================================================================


@dataclass(frozen=True)
class Guest:
    id: str
    owner_id: str
    name: str
    visit_date: str
    company: str = ""
    sector: str = ""
    phone: str = ""
    invited_by_member_id: str = ""
    invited_by_member_name: str = ""

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "userId": self.owner_id,
            "name": self.name,
            "company": self.company,
            "sector": self.sector,
            "phone": self.phone,
            "visitDate": self.visit_date,
            "invitedByMemberId": self.invited_by_member_id,
            "invitedByMemberName": self.invited_by_member_name,
        }


# ============================================================================
# EXTRACTED ENTRY / SCAN SNAPSHOT
# ============================================================================

# Wire name -> attribute name for the string fields of a row.
ENTRY_TEXT_FIELDS = {
    "name": "name",
    "company": "company",
    "sector": "sector",
    "phone": "phone",
    "handwrittenRequest": "handwritten_request",
    "invitedByName": "invited_by_name",
}


@dataclass
class ExtractedEntry:
    """One raw row of a scanned sheet, before it is merged into the directory."""

    name: str = ""
    company: str = ""
    sector: str = ""
    phone: str = ""
    handwritten_request: str = ""
    is_guest: bool = False
    invited_by_name: str = ""
    row_number: int | None = None

    def to_dict(self) -> dict:
        data = {
            "name": self.name,
            "company": self.company,
            "sector": self.sector,
            "phone": self.phone,
            "handwrittenRequest": self.handwritten_request,
            "isGuest": self.is_guest,
            "invitedByName": self.invited_by_name,
        }
        if self.row_number is not None:
            data["rowNumber"] = self.row_number
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "ExtractedEntry":
        row_number = data.get("rowNumber")
        return cls(
            name=_text(data.get("name")),
            company=_text(data.get("company")),
            sector=_text(data.get("sector")),
            phone=_text(data.get("phone")),
            handwritten_request=_text(data.get("handwrittenRequest")),
            is_guest=_flag(data.get("isGuest")),
            invited_by_name=_text(data.get("invitedByName")),
            row_number=int(row_number) if isinstance(row_number, int | float) else None,
        )


@dataclass
class ScanSnapshot:
    """The single most recent scan for an owner. Always overwritten, never appended."""

    owner_id: str
    date: str
    entries: list[ExtractedEntry] = field(default_factory=list)
    updated_at: str = ""

    def split_requests(self) -> tuple[list[ExtractedEntry], list[ExtractedEntry]]:
        """(rows with a handwritten request, rows without one)."""
        with_request = [e for e in self.entries if e.handwritten_request.strip()]
        without_request = [e for e in self.entries if not e.handwritten_request.strip()]
        return with_request, without_request

    def to_dict(self) -> dict:
        return {
            "date": self.date,
            "entries": [e.to_dict() for e in self.entries],
            "updatedAt": self.updated_at,
        }


# ============================================================================
# ACCOUNT
# ============================================================================


@dataclass(frozen=True)
class Account:
    id: str
    email: str
    name: str
    role: str  # admin | user
    is_approved: bool
    created_at: str = ""

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "email": self.email,
            "name": self.name,
            "role": self.role,
            "isApproved": self.is_approved,
            "createdAt": self.created_at,
        }
