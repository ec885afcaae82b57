"""
Reference Timeline — per-member date-stamped requests, at most one per date.

upsert() is idempotent: applying the same (date, text) twice gives the same
collection (ignoring reference ids) as applying it once.
"""

from roster.models import Member, Reference, new_id


def upsert(member: Member, date: str, text: str | None) -> Member:
    """
    Insert or replace the reference for `date`.

    Empty text (after trimming) is a no-op: nothing is created or removed.
    An existing reference for the date keeps its id and position and gets the
    new text; otherwise a new reference goes to the front (most recent first).
    """
    cleaned = (text or "").strip()
    if not cleaned:
        return member

    existing = member.reference_for(date)
    if existing is not None:
        if existing.text == cleaned:
            return member
        refs = tuple(
            Reference(id=r.id, date=r.date, text=cleaned) if r.date == date else r
            for r in member.references
        )
        return member.with_fields(references=refs)

    new_ref = Reference(id=new_id(), date=date, text=cleaned)
    return member.with_fields(references=(new_ref, *member.references))


def replace_text(member: Member, ref_id: str, text: str) -> Member | None:
    """Set the text of the reference with `ref_id`. Returns None if it doesn't exist."""
    if not any(r.id == ref_id for r in member.references):
        return None
    refs = tuple(
        Reference(id=r.id, date=r.date, text=text.strip()) if r.id == ref_id else r
        for r in member.references
    )
    return member.with_fields(references=refs)


def sorted_by_recency(references) -> list[Reference]:
    """Most recent date first; stored order breaks ties."""
    indexed = list(enumerate(references))
    indexed.sort(key=lambda pair: (pair[1].date, -pair[0]), reverse=True)
    return [ref for _, ref in indexed]


def content(member: Member) -> list[tuple[str, str]]:
    """(date, text) pairs in stored order, ids dropped. For comparisons."""
    return [(r.date, r.text) for r in member.references]
