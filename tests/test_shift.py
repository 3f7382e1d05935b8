"""
Tests for the shift lifecycle: configuring, ending, history and reopening.

The pure functions in `shift` are tested on plain documents; the round trip
is tested through the `ShiftBoardService` so that both documents and their
storage are involved.
"""
from datetime import date, datetime

from shiftboard import config
from shiftboard import shift
from shiftboard.board import ShiftBoardService
from shiftboard.migrations import migrate_active_document, migrate_history_document
from shiftboard.storage import ACTIVE_SHIFT, HISTORY


def _add_three_patients(service):
    first = service.add_patient("Aoife Byrne", arrival_time="2026-01-25T08:10:00")
    second = service.add_patient("Brian Kelly", arrival_time="2026-01-25T09:20:00")
    third = service.add_patient("Ciara Doyle", arrival_time="2026-01-25T10:30:00")
    service.set_process_state(first["id"], "admission_pending")
    service.set_process_state(second["id"], "discharged")
    service.set_process_state(third["id"], "transferred", transferred_to="St. James")
    return first, second, third


def test_configure_shift_resets_roster_and_staff():
    """
    Tests that configuring a shift starts an empty roster with the given staff,
    dropping blank names and using a placeholder when none are left.
    """
    data = migrate_active_document(None)
    data["patients"] = [{"id": "old"}]

    configured = shift.configure_shift(data, date(2026, 1, 25), ["Dr. Ahmed", "  "], [])

    assert configured["shift_date"] == "2026-01-25"
    assert configured["patients"] == []
    assert configured["shift_configured"] is True
    assert configured["doctors"] == ["Dr. Ahmed"]
    assert configured["nurses"] == [config.PLACEHOLDER_STAFF_NAME]
    assert data["patients"] == [{"id": "old"}]


def test_summarize_patients_counts():
    """
    Tests the snapshot summary counts.
    """
    patients = [
        {"process_state": "admitted", "admission": None},
        {"process_state": "to_be_seen", "admission": {"specialty": "Cardiology"}},
        {"process_state": "discharged", "admission": None},
        {"process_state": "transferred", "admission": None},
    ]
    assert shift.summarize_patients(patients) == {
        "total_patients": 4,
        "admissions": 2,
        "discharges": 1,
        "transfers": 1,
    }


def test_end_shift_without_date_or_patients_writes_no_history():
    """
    Tests that ending an empty or undated shift only resets the active document.
    """
    history = migrate_history_document(None)
    data = shift.configure_shift(migrate_active_document(None), "2026-01-25", ["A"], ["B"])

    reset, new_history, snapshot = shift.end_shift(data, history)
    assert snapshot is None
    assert new_history is history
    assert reset["shift_configured"] is False
    assert reset["shift_date"] is None

    undated = dict(data, shift_date=None, patients=[{"id": "p1"}])
    reset, new_history, snapshot = shift.end_shift(undated, history)
    assert snapshot is None
    assert new_history["history"] == {}
    assert reset["patients"] == []


def test_shift_round_trip(configured_service):
    """
    Tests ending a shift with three patients, then reopening it.

    Verifies the snapshot's summary, that reopening restores an equal roster,
    and that the history entry is not changed by reopening.
    """
    service = configured_service
    _add_three_patients(service)
    roster_before = service.get_data()["patients"]

    snapshot = service.end_shift(now=datetime(2026, 1, 25, 20, 0))

    assert snapshot["date"] == "2026-01-25"
    assert snapshot["summary"] == {"total_patients": 3, "admissions": 1, "discharges": 1, "transfers": 1}
    assert snapshot["saved_at"] == "2026-01-25T20:00:00"
    assert not service.is_shift_configured()
    assert service.get_patients() == []
    assert service.get_history_dates() == ["2026-01-25"]

    stored_before = service.load_shift("2026-01-25")
    assert service.reopen_shift("2026-01-25") is True
    assert service.is_shift_configured()
    assert service.get_shift_date() == "2026-01-25"
    assert service.get_patients() == roster_before
    assert service.get_doctors() == ["Dr. Ahmed", "Dr. Byrne"]

    # Editing the reopened shift does not touch the stored snapshot.
    service.add_patient("Declan Ryan", arrival_time="2026-01-25T18:00:00")
    assert service.load_shift("2026-01-25") == stored_before

    # A later end-of-shift for the same date overwrites it.
    second = service.end_shift(now=datetime(2026, 1, 25, 22, 0))
    assert second["summary"]["total_patients"] == 4
    assert service.load_shift("2026-01-25")["saved_at"] == "2026-01-25T22:00:00"


def test_snapshot_is_independent_of_later_edits(configured_service):
    """
    Tests that the snapshot is a deep copy of the roster.
    """
    patient = configured_service.add_patient("Eve Nolan", arrival_time="2026-01-25T08:00:00")
    snapshot = configured_service.end_shift()
    snapshot["patients"][0]["name"] = "Changed"
    assert configured_service.load_shift("2026-01-25")["patients"][0]["name"] == "Eve Nolan"
    assert configured_service.load_shift("2026-01-25")["patients"][0]["id"] == patient["id"]


def test_missing_snapshot(configured_service):
    """
    Tests the not-found signals for loading and reopening a date with no snapshot.
    """
    assert configured_service.load_shift("2025-12-31") is None
    assert configured_service.reopen_shift("2025-12-31") is False
    assert configured_service.is_shift_configured()


def test_end_shift_stops_reminders(configured_service):
    """
    Tests that ending the shift cancels the reminder task.
    """
    task = configured_service.start_reminders(lambda reminder: None, now=datetime(2026, 1, 25, 13, 0))
    assert task.active
    configured_service.end_shift()
    assert not task.active
    assert configured_service.reminder_task is None


def test_history_dates_and_retention():
    """
    Tests date ordering and dropping snapshots older than the retention period.
    """
    history = {"history": {"2026-01-01": {}, "2026-01-25": {}, "2025-12-01": {}}, "viewing_date": None}
    assert shift.available_dates(history) == ["2026-01-25", "2026-01-01", "2025-12-01"]

    trimmed = shift.clear_old_history(history, keep_days=30, today=date(2026, 1, 26))
    assert shift.available_dates(trimmed) == ["2026-01-25", "2026-01-01"]
    assert len(history["history"]) == 3


def test_viewing_date(configured_service, storage):
    """
    Tests selecting a history date and returning to the live shift.
    """
    configured_service.set_viewing_date(date(2026, 1, 20))
    assert configured_service.get_viewing_date() == "2026-01-20"
    assert storage.documents[HISTORY]["viewing_date"] == "2026-01-20"
    configured_service.set_viewing_date(None)
    assert configured_service.get_viewing_date() is None


def test_continue_previous_shift(storage):
    """
    Tests that a shift found on load can be continued with its roster.
    """
    first = ShiftBoardService(storage=storage)
    first.configure_shift("2026-01-25", ["Dr. Ahmed"], ["Nurse Kelly"])
    first.add_patient("Fiona Hayes")
    storage.documents[ACTIVE_SHIFT]["shift_configured"] = False

    second = ShiftBoardService(storage=storage)
    assert not second.is_shift_configured()
    assert second.load_previous_shift() is True
    assert second.is_shift_configured()
    assert [p["name"] for p in second.get_patients()] == ["Fiona Hayes"]
