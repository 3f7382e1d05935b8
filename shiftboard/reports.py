"""
This module builds the read-only exports of the board.

- `patient_log` renders a patient's chronological record as plain text, ready
  to be copied into the clinical notes.
- `roster_frame` flattens the roster into a `pandas.DataFrame` for CSV export.
- `shift_statistics` computes the counts shown on the statistics panel.
"""
# shiftboard/reports.py

from collections import Counter
from datetime import date, datetime

import pandas as pd

from shiftboard.models import (
    ADMISSION_STATES,
    DEPARTED_STATES,
    TRIAGE_LEVELS,
    parse_time,
    process_state_label,
)
from shiftboard.sticker_notes import pending_studies

ROSTER_COLUMNS = [
    "name", "m_number", "date_of_birth", "triage_level", "process_state",
    "assigned_box", "current_location", "doctor", "nurse", "chief_complaint",
    "arrival_time", "discharged_at", "transferred_to", "pending_studies", "notes",
]


def _clock(value) -> str:
    parsed = parse_time(value)
    return parsed.strftime("%H:%M") if parsed else "--:--"


def _tick(flag) -> str:
    return "Yes" if flag else "No"


def patient_log(patient: dict, today: date = None) -> str:
    """Generates the text record of a patient's visit.

    Args:
        patient (dict): The patient record.
        today (date, optional): The date printed in the header. Defaults to today.

    Returns:
        str: The formatted record.
    """
    today = today or date.today()
    lines = [
        "=== PATIENT RECORD ===",
        f"Patient: {patient.get('name')}",
        f"Location: {patient.get('assigned_box') or 'Not assigned'}",
        f"Doctor: {patient.get('doctor') or 'Not assigned'}",
        f"Date: {today.strftime('%d/%m/%Y')}",
        "",
        "--- EVENT TIMELINE ---",
    ]
    events = sorted(patient.get("events", []), key=lambda e: parse_time(e.get("timestamp")) or datetime.min)
    for event in events:
        lines.append(f"[{_clock(event.get('timestamp'))}] {event.get('description')}")

    lines += ["", "--- ORDERS ---"]
    for order in patient.get("orders", []):
        status_text = f"Ordered: {_clock(order.get('ordered_at'))}"
        if order.get("done_at"):
            status_text += f" | Done: {_clock(order['done_at'])}"
        if order.get("reported_at"):
            status_text += f" | Reported: {_clock(order['reported_at'])}"
        lines.append(f"- {order.get('description')} ({str(order.get('type')).upper()})")
        lines.append(f"  {status_text}")

    admission = patient.get("admission")
    if admission:
        lines += [
            "",
            "--- ADMISSION ---",
            f"Specialty: {admission.get('specialty') or 'Not set'}",
            f"Consultant: {admission.get('consultant_name') or 'Not set'}",
            f"Bed: {admission.get('bed_number') or 'Not assigned'}",
            f"Registrar contacted: {_tick(admission.get('registrar_called'))}",
            "Safety checklist:",
            f"  - Administrative admission: {_tick(admission.get('admin_complete'))}",
            f"  - ID bracelet: {_tick(admission.get('id_bracelet_verified'))}",
            f"  - MRSA swabs: {_tick(admission.get('mrsa_swabs'))}",
            f"  - Falls assessment: {_tick(admission.get('falls_assessment'))}",
        ]
        if admission.get("handover_notes"):
            lines.append(f"Handover notes: {admission['handover_notes']}")
        if admission.get("completed_at"):
            lines.append(f"Admission completed: {_clock(admission['completed_at'])}")

    if patient.get("discharged_at"):
        lines += ["", "--- DISCHARGE ---", f"Discharge time: {_clock(patient['discharged_at'])}"]
        if patient.get("transferred_to"):
            lines.append(f"Transferred to: {patient['transferred_to']}")

    lines += ["", "=== END OF RECORD ==="]
    return "\n".join(lines)


def roster_frame(patients: list) -> pd.DataFrame:
    """Flattens the roster into one row per patient."""
    rows = []
    for patient in patients:
        row = {column: patient.get(column) for column in ROSTER_COLUMNS}
        row["process_state"] = process_state_label(patient.get("process_state"))
        row["pending_studies"] = ", ".join(pending_studies(patient))
        row["notes"] = ", ".join(n.get("text", "") for n in patient.get("sticker_notes", []))
        rows.append(row)
    return pd.DataFrame(rows, columns=ROSTER_COLUMNS)


def shift_statistics(patients: list) -> dict:
    """Counts the roster for the statistics panel.

    Returns:
        dict: total, active, admissions, discharges, transfers, did_not_wait,
            triage (level -> count for every level), pending_studies
            (study -> count) and followups (follow-up -> count).
    """
    triage = {level: 0 for level in TRIAGE_LEVELS}
    studies = Counter()
    followups = Counter()
    for patient in patients:
        if patient.get("triage_level") in triage:
            triage[patient["triage_level"]] += 1
        studies.update(pending_studies(patient))
        followups.update(
            note.get("text") for note in patient.get("sticker_notes", []) if note.get("type") == "followup"
        )

    states = [p.get("process_state") for p in patients]
    return {
        "total": len(patients),
        "active": sum(1 for s in states if s not in DEPARTED_STATES and s != "did_not_wait"),
        "admissions": sum(
            1 for p in patients if p.get("admission") or p.get("process_state") in ADMISSION_STATES
        ),
        "discharges": states.count("discharged"),
        "transfers": states.count("transferred"),
        "did_not_wait": states.count("did_not_wait"),
        "triage": triage,
        "pending_studies": dict(studies),
        "followups": dict(followups),
    }
