"""
Directory Router — members, guests and scans of the signed-in account.

All endpoints are scoped to the bearer token's account; there is no way to
address another account's directory.

Endpoints:
  GET    /members                               list (q = search)
  DELETE /members                               clear the whole directory
  GET    /members/{member_id}
  PATCH  /members/{member_id}                   manual profile edit
  DELETE /members/{member_id}
  PATCH  /members/{member_id}/references/{ref_id}
  GET    /members/{member_id}/guests            guests invited by the member
  GET    /guests                                list (q = search)
  POST   /scans                                 confirm a reviewed batch
  POST   /scans/extract                         image upload -> rows (stores nothing)
  GET    /scans/last
  GET    /scans/last/requests                   last scan split by handwritten request
  PATCH  /scans/last/entries/{index}            correct one field of one row
"""

import logging

from fastapi import APIRouter, Depends, File, Query, UploadFile
from starlette.concurrency import run_in_threadpool

from api.auth import require_account
from api.response_models import (
    EntryEditRequest,
    EntryEditResponse,
    EntryModel,
    GuestModel,
    ListResponse,
    MemberModel,
    MutationResponse,
    ProfileUpdateRequest,
    ReconcileResponse,
    ReferenceUpdateRequest,
    ScanRequest,
    SnapshotModel,
    SnapshotRequestsModel,
)
from api.services import Services, get_services
from roster.directory import Directory
from roster.errors import ExtractionError, NotFoundError
from roster.models import Account, ExtractedEntry

logger = logging.getLogger(__name__)

directory_router = APIRouter(tags=["Directory"])

MAX_IMAGE_BYTES = 20 * 1024 * 1024


def get_directory(
    account: Account = Depends(require_account),
    services: Services = Depends(get_services),
) -> Directory:
    """The caller's own directory."""
    return services.store.for_owner(account.id)


def _members(members) -> ListResponse[MemberModel]:
    items = [MemberModel.model_validate(m.to_dict()) for m in members]
    return ListResponse[MemberModel](items=items, total=len(items))


def _guests(guests) -> ListResponse[GuestModel]:
    items = [GuestModel.model_validate(g.to_dict()) for g in guests]
    return ListResponse[GuestModel](items=items, total=len(items))


def _entries(entries) -> list[EntryModel]:
    return [EntryModel.model_validate(e.to_dict()) for e in entries]


# ==== Members ====


@directory_router.get("/members", response_model=ListResponse[MemberModel])
def list_members(
    q: str | None = Query(None, description="Case-insensitive search on name, company, sector"),
    directory: Directory = Depends(get_directory),
):
    members = directory.search_members(q) if q else directory.members
    return _members(members)


@directory_router.delete("/members", response_model=MutationResponse)
def clear_directory(directory: Directory = Depends(get_directory)):
    """Delete every member, guest and the last scan of the caller."""
    counts = directory.clear_all()
    return {"success": True, "deleted": counts}


@directory_router.get("/members/{member_id}", response_model=MemberModel)
def get_member(member_id: str, directory: Directory = Depends(get_directory)):
    return MemberModel.model_validate(directory.require_member(member_id).to_dict())


@directory_router.patch("/members/{member_id}", response_model=MemberModel)
def update_member_profile(
    member_id: str, body: ProfileUpdateRequest, directory: Directory = Depends(get_directory)
):
    """Set profile fields directly. The member id never changes."""
    fields = body.model_dump(exclude_unset=True)
    member = directory.update_member_profile(member_id, fields)
    return MemberModel.model_validate(member.to_dict())


@directory_router.delete("/members/{member_id}", response_model=MutationResponse)
def delete_member(member_id: str, directory: Directory = Depends(get_directory)):
    if not directory.delete_member(member_id):
        raise NotFoundError("member", member_id)
    return {"success": True, "id": member_id}


@directory_router.patch("/members/{member_id}/references/{ref_id}", response_model=MemberModel)
def update_reference(
    member_id: str,
    ref_id: str,
    body: ReferenceUpdateRequest,
    directory: Directory = Depends(get_directory),
):
    member = directory.update_reference(member_id, ref_id, body.text)
    return MemberModel.model_validate(member.to_dict())


@directory_router.get("/members/{member_id}/guests", response_model=ListResponse[GuestModel])
def guests_invited_by(member_id: str, directory: Directory = Depends(get_directory)):
    return _guests(directory.guests_invited_by(member_id))


# ==== Guests ====


@directory_router.get("/guests", response_model=ListResponse[GuestModel])
def list_guests(
    q: str | None = Query(None, description="Case-insensitive search"),
    directory: Directory = Depends(get_directory),
):
    guests = directory.search_guests(q) if q else directory.guests
    return _guests(guests)


# ==== Scans ====


@directory_router.post("/scans", response_model=ReconcileResponse)
def confirm_scan(body: ScanRequest, directory: Directory = Depends(get_directory)):
    """
    Merge a reviewed batch into the directory.

    Row problems are reported in the result (skipped / failed) with a 200.
    If the snapshot could not be saved the response is 503 and still
    carries the partial result.
    """
    entries = [ExtractedEntry.from_dict(e.model_dump(by_alias=True)) for e in body.entries]
    result = directory.add_or_update_members(entries, body.date)
    return ReconcileResponse.model_validate(result.to_dict())


@directory_router.post("/scans/extract", response_model=ListResponse[EntryModel])
async def extract_scan(
    file: UploadFile = File(..., description="Photo of the attendance sheet"),
    account: Account = Depends(require_account),
    services: Services = Depends(get_services),
):
    """Read rows from a sheet photo. Nothing is stored until POST /scans."""
    image = await file.read()
    if len(image) > MAX_IMAGE_BYTES:
        raise ExtractionError(f"Image too large ({len(image)} bytes)")

    mime_type = file.content_type or "image/jpeg"
    logger.info(f"Extracting sheet for account {account.id} ({mime_type}, {len(image)} bytes)")
    entries = await run_in_threadpool(services.extractor.extract, image, mime_type)
    items = _entries(entries)
    return ListResponse[EntryModel](items=items, total=len(items))


def _require_snapshot(directory: Directory):
    snapshot = directory.last_scan
    if snapshot is None:
        raise NotFoundError("scan snapshot", directory.owner_id)
    return snapshot


@directory_router.get("/scans/last", response_model=SnapshotModel)
def get_last_scan(directory: Directory = Depends(get_directory)):
    return SnapshotModel.model_validate(_require_snapshot(directory).to_dict())


@directory_router.get("/scans/last/requests", response_model=SnapshotRequestsModel)
def get_last_scan_requests(directory: Directory = Depends(get_directory)):
    snapshot = _require_snapshot(directory)
    with_requests, without_requests = snapshot.split_requests()
    return SnapshotRequestsModel(
        date=snapshot.date,
        with_requests=_entries(with_requests),
        without_requests=_entries(without_requests),
    )


@directory_router.patch("/scans/last/entries/{index}", response_model=EntryEditResponse)
def edit_last_scan_entry(
    index: int, body: EntryEditRequest, directory: Directory = Depends(get_directory)
):
    """Correct one field of one row; member rows are re-merged into the directory."""
    result = directory.update_last_scan_entry(index, body.field, body.value or "")
    return EntryEditResponse(
        action=result.action,
        entry=EntryModel.model_validate(result.entry.to_dict()),
        member=MemberModel.model_validate(result.member.to_dict()) if result.member else None,
    )
