"""
This module upgrades persisted ShiftBoard records to the current schema.

Patient records are versioned through the active-shift document's `version`
field. Upgrades run as an ordered pipeline of steps (v1 -> v2 -> v3). Each step
only fills in what an older record lacks, deriving values from fields that are
present, so every step is total and idempotent: running the pipeline again on
an already-migrated record returns an equal record.

Schema history:
- v1: patients carried a single `box` and a coarse `status`
  ('active', 'admission', 'discharged', ...), orders, events and an optional
  admission checklist.
- v2: identity fields, triage level, nurse, separate assigned box and current
  location, the fine-grained `process_state`, and sticker notes.
- v3: appointments with reminder flags, a unique `slot_index` on every
  sticker note, and bed tracking on the admission record.
"""
# shiftboard/migrations.py

import copy
import logging

from shiftboard import config
from shiftboard.models import (
    AdmissionRecord,
    DEFAULT_TRIAGE_LEVEL,
    PROCESS_STATE_LABELS,
    TRIAGE_LEVELS,
)

logger = logging.getLogger(__name__)

CURRENT_VERSION = 3

LEGACY_STATUS_MAP = {
    "active": "to_be_seen",
    "waiting_room": "registered",
    "treatment_room": "to_be_seen",
    "review": "awaiting_results",
    "admission": "admission",
    "discharged": "discharged",
    "transferred": "transferred",
}


def _upgrade_v1_to_v2(patient: dict) -> dict:
    """Derives the v2 fields from the v1 `box` and `status` fields."""
    legacy_box = patient.get("box") or ""
    patient.setdefault("assigned_box", legacy_box)
    patient.setdefault("current_location", patient.get("assigned_box") or legacy_box)

    if patient.get("process_state") not in PROCESS_STATE_LABELS:
        patient["process_state"] = LEGACY_STATUS_MAP.get(patient.get("status"), "registered")

    if patient.get("triage_level") not in TRIAGE_LEVELS:
        patient["triage_level"] = DEFAULT_TRIAGE_LEVEL

    for key in ("name", "date_of_birth", "m_number", "chief_complaint", "doctor", "nurse"):
        if patient.get(key) is None:
            patient[key] = ""
    for key in ("orders", "events", "sticker_notes"):
        if not isinstance(patient.get(key), list):
            patient[key] = []
    patient.setdefault("discharged_at", None)
    patient.setdefault("transferred_to", None)
    patient.setdefault("admission", None)
    return patient


def _normalise_slots(notes: list) -> None:
    """Gives every note a unique slot index within the board.

    Notes that already hold a valid, unclaimed slot keep it (first one wins on
    duplicates). The rest take their list position when they never had a slot
    and that position is free, otherwise the lowest free slot. When the board
    is full the note is left unplaced (`slot_index` None).
    """
    total = config.TOTAL_NOTE_SLOTS
    used = set()
    unplaced = []
    for position, note in enumerate(notes):
        slot = note.get("slot_index")
        if isinstance(slot, int) and 0 <= slot < total and slot not in used:
            used.add(slot)
        else:
            unplaced.append((position, note))

    for position, note in unplaced:
        if note.get("slot_index") is None and position < total and position not in used:
            slot = position
        else:
            slot = next((s for s in range(total) if s not in used), None)
        note["slot_index"] = slot
        if slot is not None:
            used.add(slot)


def _upgrade_v2_to_v3(patient: dict) -> dict:
    """Adds appointment flags, note slots and admission bed fields."""
    if not isinstance(patient.get("appointments"), list):
        patient["appointments"] = []
    for appointment in patient["appointments"]:
        appointment.setdefault("status", "pending")
        appointment.setdefault("reminder_minutes", 30)
        appointment.setdefault("reminder_triggered", False)
        appointment.setdefault("notes", None)

    if not isinstance(patient.get("sticker_notes"), list):
        patient["sticker_notes"] = []
    for note in patient["sticker_notes"]:
        if note.get("type") == "study":
            note.setdefault("completed", False)
    _normalise_slots(patient["sticker_notes"])

    admission = patient.get("admission")
    if admission:
        if "consultant_name" not in admission:
            admission["consultant_name"] = admission.get("consultant") or ""
        defaults = AdmissionRecord(started_at=patient.get("arrival_time")).to_dict()
        for key, value in defaults.items():
            admission.setdefault(key, value)
    return patient


UPGRADES = [
    (2, _upgrade_v1_to_v2),
    (3, _upgrade_v2_to_v3),
]


def migrate_patient(record: dict, from_version: int = 1) -> dict:
    """Returns a copy of a patient record upgraded to `CURRENT_VERSION`.

    Args:
        record (dict): A stored patient record of any schema version.
        from_version (int, optional): The version the record was stored with.
            Steps for older versions are skipped. Defaults to 1, which runs
            every step; this is always safe because the steps are idempotent.

    Returns:
        dict: The upgraded record.
    """
    patient = copy.deepcopy(record)
    for target_version, upgrade in UPGRADES:
        if from_version < target_version:
            patient = upgrade(patient)
    return patient


def migrate_active_document(document: dict) -> dict:
    """Upgrades an active-shift document and fills in missing top-level settings.

    Args:
        document (dict): The stored document, or None for a fresh start.

    Returns:
        dict: A document at `CURRENT_VERSION`.
    """
    document = dict(document or {})
    version = document.get("version", 1)
    if version < CURRENT_VERSION:
        logger.info("Migrating %d patient records from schema v%s to v%s",
                    len(document.get("patients") or []), version, CURRENT_VERSION)
        document["patients"] = [migrate_patient(p, version) for p in document.get("patients") or []]
        document["version"] = CURRENT_VERSION

    document.setdefault("patients", [])
    document.setdefault("doctors", list(config.DEFAULT_DOCTORS))
    document.setdefault("nurses", list(config.DEFAULT_NURSES))
    document.setdefault("locations", list(config.DEFAULT_LOCATIONS))
    document.setdefault("shift_date", None)
    document.setdefault("shift_configured", False)
    document.setdefault("note_slot_preferences", {})
    document.setdefault("search_query", "")
    document.setdefault("filter_doctor", None)
    document.setdefault("filter_nurse", None)
    document.setdefault("filter_by_pending_study", None)
    document.setdefault("filter_process_state", None)
    document.setdefault("hide_discharged_from_board", True)
    document.setdefault("study_options", list(config.DEFAULT_STUDY_OPTIONS))
    document.setdefault("followup_options", list(config.DEFAULT_FOLLOWUP_OPTIONS))
    document.setdefault("precaution_options", list(config.DEFAULT_PRECAUTION_OPTIONS))
    document.setdefault("discharge_options", list(config.DEFAULT_DISCHARGE_OPTIONS))
    return document


def migrate_history_document(document: dict) -> dict:
    """Fills in the structure of a history document; snapshots are migrated on reopen."""
    document = dict(document or {})
    if not isinstance(document.get("history"), dict):
        document["history"] = {}
    document.setdefault("viewing_date", None)
    return document
