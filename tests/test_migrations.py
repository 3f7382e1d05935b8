"""
Unit tests for the schema upgrade pipeline.

These tests feed legacy records of each schema version through the migration
functions and check the derived fields and that migrating twice changes
nothing.
"""
import copy

import pytest

from shiftboard import config
from shiftboard.migrations import (
    CURRENT_VERSION,
    migrate_active_document,
    migrate_history_document,
    migrate_patient,
)


def _legacy_v1_patient(**overrides):
    record = {
        "id": "p1",
        "name": "Legacy Patient",
        "box": "Box 2",
        "status": "active",
        "doctor": "Dr. Smith",
        "arrival_time": "2026-01-24T22:15:00",
        "orders": [],
        "events": [],
        "admission": None,
    }
    record.update(overrides)
    return record


def test_v1_patient_gets_v2_fields():
    """
    Tests that a v1 record's box and status are mapped onto the new fields.
    """
    migrated = migrate_patient(_legacy_v1_patient())
    assert migrated["assigned_box"] == "Box 2"
    assert migrated["current_location"] == "Box 2"
    assert migrated["process_state"] == "to_be_seen"
    assert migrated["triage_level"] == 3
    assert migrated["nurse"] == ""
    assert migrated["sticker_notes"] == []
    assert migrated["appointments"] == []


@pytest.mark.parametrize("status, state", [
    ("active", "to_be_seen"),
    ("waiting_room", "registered"),
    ("review", "awaiting_results"),
    ("admission", "admission"),
    ("discharged", "discharged"),
    ("transferred", "transferred"),
    ("something_else", "registered"),
    (None, "registered"),
])
def test_legacy_status_mapping(status, state):
    """
    Tests the mapping from the legacy coarse status to the process state.
    """
    assert migrate_patient(_legacy_v1_patient(status=status))["process_state"] == state


def test_existing_process_state_wins_over_legacy_status():
    """
    Tests that a record already carrying a valid process state keeps it.
    """
    record = _legacy_v1_patient(status="active", process_state="bed_assigned")
    assert migrate_patient(record)["process_state"] == "bed_assigned"


def test_legacy_admission_gets_bed_fields():
    """
    Tests that a legacy admission record keeps its data and gains the new fields.
    """
    record = _legacy_v1_patient(
        status="admission",
        admission={"specialty": "Cardiology", "consultant": "Dr. Heart", "registrar_called": True},
    )
    admission = migrate_patient(record)["admission"]
    assert admission["specialty"] == "Cardiology"
    assert admission["consultant_name"] == "Dr. Heart"
    assert admission["registrar_called"] is True
    assert admission["bed_status"] == "not_assigned"
    assert admission["bed_number"] == ""
    assert admission["completed_at"] is None


def test_note_slots_are_assigned_uniquely():
    """
    Tests slot normalisation: list position first, duplicates and invalid slots
    moved to the first free slot, and overflow left unplaced.
    """
    notes = [
        {"id": "a", "type": "study", "text": "CT"},
        {"id": "b", "type": "note", "text": "B", "slot_index": 4},
        {"id": "c", "type": "note", "text": "C", "slot_index": 4},
        {"id": "d", "type": "note", "text": "D", "slot_index": 42},
        {"id": "e", "type": "note", "text": "E"},
    ]
    migrated = migrate_patient(_legacy_v1_patient(sticker_notes=notes))
    slots = {n["id"]: n["slot_index"] for n in migrated["sticker_notes"]}
    assert slots == {"a": 0, "b": 4, "c": 1, "d": 2, "e": 3}
    assert migrated["sticker_notes"][0]["completed"] is False
    assert "completed" not in migrated["sticker_notes"][1]


def test_overflowing_notes_are_left_unplaced():
    """
    Tests that notes beyond the number of slots get no slot.
    """
    notes = [{"id": str(i), "type": "note", "text": str(i)} for i in range(config.TOTAL_NOTE_SLOTS + 2)]
    migrated = migrate_patient(_legacy_v1_patient(sticker_notes=notes))
    slots = [n["slot_index"] for n in migrated["sticker_notes"]]
    assert slots[:config.TOTAL_NOTE_SLOTS] == list(range(config.TOTAL_NOTE_SLOTS))
    assert slots[config.TOTAL_NOTE_SLOTS:] == [None, None]


def test_appointment_flags_are_filled():
    """
    Tests that v2 appointments without status or reminder flag get defaults.
    """
    record = _legacy_v1_patient(appointments=[{"id": "a1", "type": "ct", "scheduled_time": "2026-01-25T14:00:00"}])
    appointment = migrate_patient(record, from_version=2)["appointments"][0]
    assert appointment["status"] == "pending"
    assert appointment["reminder_triggered"] is False
    assert appointment["reminder_minutes"] == 30


@pytest.mark.parametrize("record", [
    _legacy_v1_patient(),
    _legacy_v1_patient(status="admission", admission={"specialty": "Neurology", "consultant": "Dr. N"}),
    _legacy_v1_patient(sticker_notes=[{"id": "x", "type": "study", "text": "CT", "slot_index": 3},
                                      {"id": "y", "type": "study", "text": "MRI", "slot_index": 3}]),
    _legacy_v1_patient(box=None, status=None, triage_level=9, name=None),
])
def test_migration_is_idempotent(record):
    """
    Tests that migrating an already-migrated record returns an equal record
    and that the input is not modified.
    """
    original = copy.deepcopy(record)
    once = migrate_patient(record)
    twice = migrate_patient(once)
    assert twice == once
    assert record == original


def test_migrate_active_document_defaults():
    """
    Tests that a missing active document becomes a fresh, current one.
    """
    document = migrate_active_document(None)
    assert document["version"] == CURRENT_VERSION
    assert document["patients"] == []
    assert document["shift_configured"] is False
    assert document["hide_discharged_from_board"] is True
    assert document["note_slot_preferences"] == {}
    assert document["doctors"] == config.DEFAULT_DOCTORS
    assert document["study_options"] == config.DEFAULT_STUDY_OPTIONS


def test_migrate_active_document_upgrades_patients_once():
    """
    Tests that a v1 document's patients are upgraded and the version is bumped,
    and that a current document is passed through.
    """
    document = {"patients": [_legacy_v1_patient()], "shift_date": "2026-01-24", "doctors": ["Dr. Smith"]}
    migrated = migrate_active_document(document)
    assert migrated["version"] == CURRENT_VERSION
    assert migrated["patients"][0]["process_state"] == "to_be_seen"
    assert migrated["doctors"] == ["Dr. Smith"]
    assert "version" not in document

    assert migrate_active_document(migrated) == migrated


def test_migrate_history_document():
    """
    Tests the history document defaults.
    """
    assert migrate_history_document(None) == {"history": {}, "viewing_date": None}
    assert migrate_history_document({"history": "broken"})["history"] == {}
