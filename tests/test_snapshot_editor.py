"""
Tests for post-hoc corrections to the last scan.
"""

import pytest

from roster import timeline
from roster.errors import NotFoundError, StorageError, UnknownFieldError
from roster.models import ExtractedEntry
from roster.storage import SQLiteDirectoryBackend

DATE = "2024-05-01"


@pytest.fixture
def scanned(directory):
    """Directory after one scan: Ana (member, request), Luis (guest of Ana)."""
    directory.add_or_update_members(
        [
            ExtractedEntry(name="Ana Gómez", company="Acme", handwritten_request="Contador"),
            ExtractedEntry(name="Luis Pérez", is_guest=True, invited_by_name="Ana"),
            ExtractedEntry(name="Beto Ruiz", sector="Legal"),
        ],
        DATE,
    )
    return directory


class TestMemberRowEdits:
    def test_request_edit_replaces_reference_for_scan_date(self, scanned):
        result = scanned.update_last_scan_entry(0, "handwrittenRequest", "Contador fiscal")

        assert result.action == "updated"
        ana = scanned.get_member("u1_ana-gómez")
        assert timeline.content(ana) == [(DATE, "Contador fiscal")]
        assert scanned.last_scan.entries[0].handwritten_request == "Contador fiscal"

    def test_request_added_to_row_without_one(self, scanned):
        scanned.update_last_scan_entry(2, "handwrittenRequest", "Diseñador")

        beto = scanned.get_member("u1_beto-ruiz")
        assert timeline.content(beto) == [(DATE, "Diseñador")]

    def test_company_edit_is_targeted(self, scanned):
        """Only the edited field is merged; other profile fields untouched."""
        scanned.update_member_profile("u1_ana-gómez", {"phone": "555-1234"})

        result = scanned.update_last_scan_entry(0, "company", "Globex")

        ana = result.member
        assert ana.company == "Globex"
        assert ana.phone == "555-1234"
        assert timeline.content(ana) == [(DATE, "Contador")]

    def test_empty_request_edit_keeps_reference(self, scanned):
        result = scanned.update_last_scan_entry(0, "handwrittenRequest", "")

        assert result.action == "unchanged"
        assert scanned.last_scan.entries[0].handwritten_request == ""
        ana = scanned.get_member("u1_ana-gómez")
        assert timeline.content(ana) == [(DATE, "Contador")]

    def test_empty_company_edit_never_erases(self, scanned):
        scanned.update_last_scan_entry(0, "company", "")

        assert scanned.get_member("u1_ana-gómez").company == "Acme"

    def test_name_correction_creates_new_identity(self, scanned):
        """A corrected spelling resolves to a different key; the full row is merged."""
        result = scanned.update_last_scan_entry(2, "name", "Alberto Ruiz")

        assert result.action == "created"
        alberto = scanned.get_member("u1_alberto-ruiz")
        assert alberto.sector == "Legal"
        # The old identity is not merged or removed.
        assert scanned.get_member("u1_beto-ruiz") is not None

    def test_repeated_edit_is_idempotent(self, scanned):
        scanned.update_last_scan_entry(0, "handwrittenRequest", "Notario")
        scanned.update_last_scan_entry(0, "handwrittenRequest", "Notario")

        ana = scanned.get_member("u1_ana-gómez")
        assert timeline.content(ana) == [(DATE, "Notario")]

    def test_invited_by_edit_on_member_row_changes_nothing(self, scanned):
        before = scanned.get_member("u1_ana-gómez")

        result = scanned.update_last_scan_entry(0, "invitedByName", "Beto")

        assert result.action == "unchanged"
        assert scanned.get_member("u1_ana-gómez") == before

    def test_invited_by_edit_does_not_recreate_deleted_member(self, scanned):
        scanned.delete_member("u1_ana-gómez")

        result = scanned.update_last_scan_entry(0, "invitedByName", "Beto")

        assert result.action == "unchanged"
        assert result.member is None
        assert scanned.get_member("u1_ana-gómez") is None
        assert scanned.last_scan.entries[0].invited_by_name == "Beto"

    def test_edit_uses_snapshot_date_not_today(self, scanned):
        scanned.update_last_scan_entry(2, "handwrittenRequest", "Arquitecto")

        beto = scanned.get_member("u1_beto-ruiz")
        assert beto.references[0].date == DATE

    def test_wire_and_python_field_names_accepted(self, scanned):
        scanned.update_last_scan_entry(0, "handwritten_request", "X")
        assert scanned.last_scan.entries[0].handwritten_request == "X"


class TestGuestRowEdits:
    def test_guest_edit_is_view_only(self, scanned):
        guests_before = scanned.guests

        result = scanned.update_last_scan_entry(1, "name", "Luis Alberto Pérez")

        assert result.action == "view_only"
        assert scanned.last_scan.entries[1].name == "Luis Alberto Pérez"
        assert scanned.guests == guests_before
        assert scanned.get_member("u1_luis-alberto-pérez") is None


class TestEditErrors:
    def test_unknown_field(self, scanned):
        with pytest.raises(UnknownFieldError):
            scanned.update_last_scan_entry(0, "isGuest", "true")

    def test_index_out_of_range(self, scanned):
        with pytest.raises(NotFoundError):
            scanned.update_last_scan_entry(3, "name", "X")
        with pytest.raises(NotFoundError):
            scanned.update_last_scan_entry(-1, "name", "X")

    def test_no_snapshot(self, directory):
        with pytest.raises(NotFoundError):
            directory.update_last_scan_entry(0, "name", "X")

    def test_blanked_name_is_skipped(self, scanned):
        result = scanned.update_last_scan_entry(0, "name", "  ")

        assert result.action == "skipped"
        assert scanned.last_scan.entries[0].name == "  "

    def test_directory_failure_keeps_snapshot_edit(self, db_path):
        """The view keeps the correction even if the directory write fails."""
        from roster.directory import DirectoryStore

        class FailingMemberWrites(SQLiteDirectoryBackend):
            fail = False

            def put_member(self, member):
                if self.fail:
                    raise StorageError("simulated")
                super().put_member(member)

        backend = FailingMemberWrites(db_path)
        directory = DirectoryStore(backend).for_owner("u1")
        directory.add_or_update_members([ExtractedEntry(name="Ana")], DATE)
        backend.fail = True

        with pytest.raises(StorageError):
            directory.update_last_scan_entry(0, "company", "Acme")

        assert directory.last_scan.entries[0].company == "Acme"
        assert directory.get_member("u1_ana").company == ""
