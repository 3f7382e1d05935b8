"""
This module places sticker notes into the fixed slots of a patient's card.

Each patient has `config.TOTAL_NOTE_SLOTS` slots and every note occupies exactly
one of them; no two notes of the same patient share a slot. When a note is
dragged to a slot, the slot is remembered for that note's type and text in a
board-wide preference map, so the next note with the same type and text lands
in the same slot on any patient (if that slot is free there).

Functions are pure: they return new collections instead of mutating their
arguments.
"""
# shiftboard/sticker_notes.py

from __future__ import annotations

import logging
from typing import Dict, List, Optional, Tuple

from shiftboard import config
from shiftboard.models import NOTE_TYPES, StickerNote
from shiftboard.roster import find_patient, update_patient

logger = logging.getLogger(__name__)


def preference_key(note_type: str, text: str) -> str:
    """Returns the key under which a note's preferred slot is remembered."""
    return f"{note_type}:{text}"


def occupied_slots(patient: dict, exclude_note_id: Optional[str] = None) -> set:
    """Returns the set of slot indices used by the patient's notes."""
    return {
        note.get("slot_index")
        for note in patient.get("sticker_notes", [])
        if note.get("slot_index") is not None and note.get("id") != exclude_note_id
    }


def first_free_slot(patient: dict) -> Optional[int]:
    """Returns the lowest free slot index, or None if the board is full."""
    used = occupied_slots(patient)
    for slot in range(config.TOTAL_NOTE_SLOTS):
        if slot not in used:
            return slot
    return None


def slot_map(patient: dict) -> Dict[int, dict]:
    """Maps each occupied slot index to its note, for rendering the grid."""
    return {
        note["slot_index"]: note
        for note in patient.get("sticker_notes", [])
        if note.get("slot_index") is not None
    }


def pending_studies(patient: dict) -> List[str]:
    """Lists the texts of the patient's uncompleted study notes."""
    return [
        note.get("text")
        for note in patient.get("sticker_notes", [])
        if note.get("type") == "study" and not note.get("completed")
    ]


def resolve_slot(patient: dict, preferences: dict, note_type: str, text: str) -> Optional[int]:
    """Chooses the slot for a new note: the preferred slot if free, else the first free one."""
    used = occupied_slots(patient)
    preferred = preferences.get(preference_key(note_type, text))
    if preferred is not None and 0 <= preferred < config.TOTAL_NOTE_SLOTS and preferred not in used:
        return preferred
    return first_free_slot(patient)


def add_note(patients: list, preferences: dict, patient_id: str, note_type: str, text: str,
             now=None) -> Tuple[list, Optional[dict]]:
    """Adds a note to a patient in its resolved slot.

    Args:
        patients: The current patient records.
        preferences: The board-wide preferred-slot map.
        patient_id: The id of the patient.
        note_type: One of the keys of `NOTE_TYPES`.
        text: The note's text.
        now: Creation time. Defaults to now.

    Returns:
        A tuple of the new patient list and the created note, or the original
        list and None if the patient is unknown, the input is invalid, or every
        slot is taken.
    """
    text = (text or "").strip()
    if note_type not in NOTE_TYPES or not text:
        return patients, None
    patient = find_patient(patients, patient_id)
    if patient is None:
        return patients, None

    slot = resolve_slot(patient, preferences, note_type, text)
    if slot is None:
        logger.info("No free note slot for patient %s; note %r not added", patient_id, text)
        return patients, None

    note = StickerNote(note_type, text, slot, created_at=now).to_dict()

    def change(record):
        record.setdefault("sticker_notes", []).append(note)

    return update_patient(patients, patient_id, change), dict(note)


def move_note_to_slot(patients: list, preferences: dict, patient_id: str, note_id: str,
                      target_slot: int) -> Tuple[list, dict]:
    """Moves a note to `target_slot`, swapping with any note already there.

    The move also records `target_slot` as the preferred slot for the note's
    type and text across the whole board.

    Returns:
        A tuple of the new patient list and the new preference map. Both are
        returned unchanged when the patient or note is unknown, the target
        slot is out of range, or an unplaced note targets a taken slot.
    """
    if not isinstance(target_slot, int) or not 0 <= target_slot < config.TOTAL_NOTE_SLOTS:
        return patients, preferences
    patient = find_patient(patients, patient_id)
    if patient is None:
        return patients, preferences
    moved = next((n for n in patient.get("sticker_notes", []) if n.get("id") == note_id), None)
    if moved is None:
        return patients, preferences
    if moved.get("slot_index") is None and any(
        n.get("slot_index") == target_slot for n in patient.get("sticker_notes", [])
    ):
        # An unplaced note has no slot to hand over to the occupant.
        logger.info("Slot %d is taken; unplaced note %s not moved", target_slot, note_id)
        return patients, preferences

    def change(record):
        notes = record.get("sticker_notes", [])
        note = next(n for n in notes if n.get("id") == note_id)
        old_slot = note.get("slot_index")
        for other in notes:
            if other.get("id") != note_id and other.get("slot_index") == target_slot:
                other["slot_index"] = old_slot
        note["slot_index"] = target_slot

    new_preferences = dict(preferences)
    new_preferences[preference_key(moved.get("type"), moved.get("text"))] = target_slot
    return update_patient(patients, patient_id, change), new_preferences


def toggle_completion(patients: list, patient_id: str, note_id: str) -> list:
    """Flips the completion flag of a study note; other note types are left alone."""
    def change(record):
        for note in record.get("sticker_notes", []):
            if note.get("id") == note_id and note.get("type") == "study":
                note["completed"] = not note.get("completed", False)
                return True
        return False

    return update_patient(patients, patient_id, change)


def remove_note(patients: list, patient_id: str, note_id: str) -> list:
    """Deletes a note; its slot becomes free and the other notes stay where they are."""
    def change(record):
        notes = record.get("sticker_notes", [])
        remaining = [n for n in notes if n.get("id") != note_id]
        if len(remaining) == len(notes):
            return False
        record["sticker_notes"] = remaining

    return update_patient(patients, patient_id, change)
