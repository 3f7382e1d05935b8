"""
This module owns the lifecycle of a shift and its date-keyed history.

A shift moves from unconfigured to active when it is configured with a date and
staff (or when a shift found on load is continued). Ending it writes a snapshot
of the roster into the history under the shift's date and resets the active
document to unconfigured with an empty roster. A stored snapshot can later be
reopened: its data is copied back into the active document while the history
entry itself stays as it was, until another end-of-shift for the same date
overwrites it.

All functions take the active-shift and/or history documents and return new
documents; snapshots are deep copies, so later edits to the live roster never
leak into the history.
"""
# shiftboard/shift.py

import copy
import logging
from datetime import date, datetime, timedelta

from shiftboard import config
from shiftboard.migrations import migrate_patient
from shiftboard.models import ADMISSION_STATES, to_iso

logger = logging.getLogger(__name__)


def normalise_date(value) -> str:
    """Returns a calendar date as a 'YYYY-MM-DD' string."""
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    return str(value)[:10]


def _staff_list(names) -> list:
    cleaned = [name.strip() for name in (names or []) if name and name.strip()]
    return cleaned or [config.PLACEHOLDER_STAFF_NAME]


def configure_shift(data: dict, shift_date, physicians: list, nurses: list) -> dict:
    """Starts a new active shift with an empty roster.

    Args:
        data (dict): The active-shift document.
        shift_date (date or str): The shift's calendar date.
        physicians (list): Physician names; blanks are dropped.
        nurses (list): Nurse and support names; blanks are dropped.

    Returns:
        dict: The new active-shift document.
    """
    updated = dict(data)
    updated["shift_date"] = normalise_date(shift_date)
    updated["doctors"] = _staff_list(physicians)
    updated["nurses"] = _staff_list(nurses)
    updated["patients"] = []
    updated["shift_configured"] = True
    updated["filter_doctor"] = None
    updated["filter_nurse"] = None
    return updated


def load_previous_shift(data: dict) -> dict:
    """Marks the shift found on load as active, keeping its roster."""
    updated = dict(data)
    updated["shift_configured"] = True
    return updated


def summarize_patients(patients: list) -> dict:
    """Counts the roster for a shift snapshot.

    Admissions count every patient with an admission record or in an
    admission-related process state.
    """
    admissions = sum(
        1 for p in patients
        if p.get("admission") or p.get("process_state") in ADMISSION_STATES
    )
    return {
        "total_patients": len(patients),
        "admissions": admissions,
        "discharges": sum(1 for p in patients if p.get("process_state") == "discharged"),
        "transfers": sum(1 for p in patients if p.get("process_state") == "transferred"),
    }


def build_snapshot(data: dict, now=None) -> dict:
    """Builds a history snapshot of the active shift."""
    patients = copy.deepcopy(data.get("patients") or [])
    return {
        "date": data.get("shift_date"),
        "patients": patients,
        "doctors": list(data.get("doctors") or []),
        "nurses": list(data.get("nurses") or []),
        "locations": list(data.get("locations") or []),
        "summary": summarize_patients(patients),
        "saved_at": to_iso(now or datetime.now()),
    }


def end_shift(data: dict, history_doc: dict, now=None) -> tuple:
    """Closes the active shift, saving a snapshot when there is something to save.

    A snapshot is written only when the shift has a date and at least one
    patient; it replaces any earlier snapshot stored under the same date. In
    every case the active document goes back to unconfigured with an empty
    roster.

    Returns:
        tuple: (new active document, new history document, the snapshot or None).
    """
    snapshot = None
    new_history = history_doc
    if data.get("shift_date") and data.get("patients"):
        snapshot = build_snapshot(data, now)
        history = dict(history_doc.get("history") or {})
        if snapshot["date"] in history:
            logger.info("Overwriting shift history entry for %s", snapshot["date"])
        history[snapshot["date"]] = copy.deepcopy(snapshot)
        new_history = dict(history_doc, history=history)
        logger.info("Saved shift %s with %d patients", snapshot["date"], snapshot["summary"]["total_patients"])
    else:
        logger.info("Ending shift without a history entry (date=%r, patients=%d)",
                    data.get("shift_date"), len(data.get("patients") or []))

    updated = dict(data)
    updated["patients"] = []
    updated["shift_date"] = None
    updated["shift_configured"] = False
    return updated, new_history, snapshot


def load_shift(history_doc: dict, shift_date) -> dict:
    """Returns a copy of the snapshot stored for `shift_date`, or None if there is none."""
    snapshot = (history_doc.get("history") or {}).get(normalise_date(shift_date))
    if snapshot is None:
        return None
    return copy.deepcopy(snapshot)


def reopen_shift(data: dict, history_doc: dict, shift_date) -> dict:
    """Copies a stored snapshot back into the active shift.

    The history entry is not modified or removed.

    Returns:
        dict: The new active document, or None if no snapshot exists for the date.
    """
    snapshot = load_shift(history_doc, shift_date)
    if snapshot is None:
        return None
    updated = dict(data)
    updated["shift_date"] = snapshot.get("date")
    updated["patients"] = [migrate_patient(p) for p in snapshot.get("patients") or []]
    updated["doctors"] = snapshot.get("doctors") or []
    updated["nurses"] = snapshot.get("nurses") or []
    updated["locations"] = snapshot.get("locations") or list(data.get("locations") or [])
    updated["shift_configured"] = True
    return updated


def available_dates(history_doc: dict) -> list:
    """Returns the dates with a stored snapshot, newest first."""
    return sorted((history_doc.get("history") or {}).keys(), reverse=True)


def set_viewing_date(history_doc: dict, shift_date) -> dict:
    """Selects the history date being viewed; None returns to the live shift."""
    return dict(history_doc, viewing_date=normalise_date(shift_date) if shift_date else None)


def clear_old_history(history_doc: dict, keep_days: int = None, today: date = None) -> dict:
    """Drops snapshots older than `keep_days` days before `today`."""
    keep_days = config.HISTORY_RETENTION_DAYS if keep_days is None else keep_days
    cutoff = ((today or date.today()) - timedelta(days=keep_days)).isoformat()
    history = {
        key: snapshot
        for key, snapshot in (history_doc.get("history") or {}).items()
        if key >= cutoff
    }
    return dict(history_doc, history=history)
