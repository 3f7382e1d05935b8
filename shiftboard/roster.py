"""
This module holds the roster-level operations on the shift's patient collection.

All functions are pure: they take the current list of patient records and
return a new list, leaving the input untouched. Only the patient being changed
is copied; the other records are shared with the previous list. Unknown patient
or order ids are no-ops that return the collection unchanged.

It covers:
- Adding patients and editing their demographic, triage and staffing fields.
- Orders and their three-stage status (ordered -> done -> reported).
- The admission record (start, update fields, complete).
- The filtered, sorted view of the roster used by the board.
"""
# shiftboard/roster.py

import copy
import logging
from datetime import datetime

from shiftboard.models import (
    AdmissionRecord,
    ADMISSION_STATES,
    DEPARTED_STATES,
    ORDER_STATUSES,
    Order,
    Patient,
    PatientEvent,
    TRIAGE_LEVELS,
    parse_time,
    to_iso,
)

logger = logging.getLogger(__name__)

ORDER_EVENT_TYPES = {"done": "order_done", "reported": "order_reported"}
ORDER_EVENT_LABELS = {"done": "Completed", "reported": "Reported"}


def find_patient(patients: list, patient_id: str):
    """Returns the patient record with the given id, or None."""
    for patient in patients:
        if patient.get("id") == patient_id:
            return patient
    return None


def update_patient(patients: list, patient_id: str, change) -> list:
    """Applies `change` to a copy of one patient and returns the new collection.

    Args:
        patients (list): The current patient records.
        patient_id (str): The id of the patient to change.
        change (callable): Receives the copied record and edits it in place.
            If it returns False, the change is discarded.

    Returns:
        list: A new list with the changed record, or the original list if the
            patient was not found or the change was discarded.
    """
    for index, patient in enumerate(patients):
        if patient.get("id") != patient_id:
            continue
        updated = copy.deepcopy(patient)
        if change(updated) is False:
            return patients
        new_patients = list(patients)
        new_patients[index] = updated
        return new_patients
    return patients


def append_event(patient: dict, event_type: str, description: str, timestamp=None) -> dict:
    """Appends an event to a (copied) patient record and returns the event."""
    event = PatientEvent(event_type, description, timestamp=timestamp).to_dict()
    patient.setdefault("events", []).append(event)
    return event


def add_patient(patients: list, name: str, arrival_time=None, **fields) -> tuple:
    """Adds a new patient with an 'arrival' event.

    Args:
        patients (list): The current patient records.
        name (str): The patient's name.
        arrival_time (datetime or str, optional): Defaults to now.
        **fields: Any of the optional `Patient` constructor fields.

    Returns:
        tuple: (new patient list, the created patient record).
    """
    record = Patient(name, arrival_time=arrival_time, **fields).to_dict()
    return patients + [record], copy.deepcopy(record)


def update_details(patients: list, patient_id: str, details: dict) -> list:
    """Updates the basic identity fields of a patient (name, DOB, M-number, complaint)."""
    allowed = ("name", "date_of_birth", "m_number", "chief_complaint")

    def change(patient):
        for key in allowed:
            if key in details:
                patient[key] = details[key]

    return update_patient(patients, patient_id, change)


def set_triage_level(patients: list, patient_id: str, level: int, now=None) -> list:
    """Sets the triage level (1-5) and logs a 'triage_change' event."""
    if level not in TRIAGE_LEVELS:
        logger.warning("Ignoring invalid triage level %r for patient %s", level, patient_id)
        return patients

    def change(patient):
        patient["triage_level"] = level
        append_event(patient, "triage_change", f"Triage level: {level}", now)

    return update_patient(patients, patient_id, change)


def assign_doctor(patients: list, patient_id: str, doctor: str, now=None) -> list:
    """Assigns (or clears) the physician and logs a 'doctor_assigned' event."""
    def change(patient):
        patient["doctor"] = doctor
        description = f"Physician assigned: {doctor}" if doctor else "Physician unassigned"
        append_event(patient, "doctor_assigned", description, now)

    return update_patient(patients, patient_id, change)


def assign_nurse(patients: list, patient_id: str, nurse: str, now=None) -> list:
    """Assigns (or clears) the nurse and logs a 'nurse_assigned' event."""
    def change(patient):
        patient["nurse"] = nurse
        description = f"Nurse assigned: {nurse}" if nurse else "Nurse unassigned"
        append_event(patient, "nurse_assigned", description, now)

    return update_patient(patients, patient_id, change)


def set_assigned_box(patients: list, patient_id: str, box: str, now=None) -> list:
    """Reassigns the patient's bay; the patient is considered to be in the new bay."""
    def change(patient):
        patient["assigned_box"] = box
        patient["current_location"] = box
        append_event(patient, "location_change", f"Assigned to {box}", now)

    return update_patient(patients, patient_id, change)


def set_current_location(patients: list, patient_id: str, location: str, now=None) -> list:
    """Records where the patient is right now, keeping the assigned bay."""
    def change(patient):
        patient["current_location"] = location
        append_event(patient, "location_change", f"Moved to {location}", now)

    return update_patient(patients, patient_id, change)


def set_arrival_time(patients: list, patient_id: str, arrival_time) -> list:
    """Edits the arrival time; earlier events are left as recorded."""
    def change(patient):
        patient["arrival_time"] = to_iso(arrival_time)

    return update_patient(patients, patient_id, change)


def add_order(patients: list, patient_id: str, order_type: str, description: str, now=None) -> list:
    """Places an order in the 'ordered' stage and logs an 'order' event."""
    def change(patient):
        order = Order(order_type, description, ordered_at=now).to_dict()
        patient.setdefault("orders", []).append(order)
        append_event(patient, "order", f"Order placed: {description}", now)

    return update_patient(patients, patient_id, change)


def update_order_status(patients: list, patient_id: str, order_id: str, status: str, timestamp=None) -> list:
    """Moves an order to 'done' or 'reported', stamping the matching time field."""
    if status not in ORDER_EVENT_TYPES:
        return patients
    stamp = to_iso(timestamp or datetime.now())

    def change(patient):
        for order in patient.get("orders", []):
            if order.get("id") == order_id:
                order["status"] = status
                order[f"{status}_at"] = stamp
                append_event(
                    patient,
                    ORDER_EVENT_TYPES[status],
                    f"{order.get('description')} - {ORDER_EVENT_LABELS[status]}",
                    stamp,
                )
                return True
        return False

    return update_patient(patients, patient_id, change)


def advance_order_status(patients: list, patient_id: str, order_id: str, timestamp=None) -> list:
    """Advances an order to its next stage; a reported order stays reported."""
    patient = find_patient(patients, patient_id)
    if not patient:
        return patients
    for order in patient.get("orders", []):
        if order.get("id") == order_id:
            position = ORDER_STATUSES.index(order.get("status", "ordered"))
            if position + 1 >= len(ORDER_STATUSES):
                return patients
            return update_order_status(patients, patient_id, order_id, ORDER_STATUSES[position + 1], timestamp)
    return patients


def start_admission(patients: list, patient_id: str, now=None) -> list:
    """Starts the admission workflow, creating the admission record if absent."""
    def change(patient):
        patient["process_state"] = "admission"
        if not patient.get("admission"):
            patient["admission"] = AdmissionRecord(started_at=now).to_dict()
        append_event(patient, "admission_started", "Admission process started", now)

    return update_patient(patients, patient_id, change)


def update_admission(patients: list, patient_id: str, data: dict) -> list:
    """Updates known admission fields; no-op when the patient has no admission record."""
    def change(patient):
        admission = patient.get("admission")
        if not admission:
            return False
        for key in AdmissionRecord.FIELDS:
            if key in data:
                admission[key] = data[key]

    return update_patient(patients, patient_id, change)


def complete_admission(patients: list, patient_id: str, now=None) -> list:
    """Marks the admission as completed; the record itself is kept."""
    def change(patient):
        admission = patient.get("admission")
        if not admission or admission.get("completed_at"):
            return False
        admission["completed_at"] = to_iso(now or datetime.now())
        specialty = admission.get("specialty") or "No specialty"
        append_event(patient, "admission_completed", f"Admission completed - {specialty}", now)

    return update_patient(patients, patient_id, change)


def rename_in_roster(patients: list, field: str, old: str, new: str) -> list:
    """Renames a staff member or location on every patient that references it."""
    return [
        dict(patient, **{field: new}) if patient.get(field) == old else patient
        for patient in patients
    ]


def is_off_board(patient: dict) -> bool:
    """Whether the patient is hidden by the 'hide discharged' toggle."""
    if patient.get("process_state") in DEPARTED_STATES:
        return True
    admission = patient.get("admission") or {}
    return patient.get("process_state") in ADMISSION_STATES and bool(admission.get("completed_at"))


def has_pending_study(patient: dict, study: str) -> bool:
    """Whether the patient has an uncompleted study note with the given text."""
    return any(
        note.get("type") == "study" and not note.get("completed") and note.get("text") == study
        for note in patient.get("sticker_notes", [])
    )


def _matches_search(patient: dict, search_query: str) -> bool:
    term = search_query.strip().lower()
    if not term:
        return True
    fields = ("name", "m_number", "chief_complaint", "assigned_box", "current_location")
    return any(term in str(patient.get(field) or "").lower() for field in fields)


def list_active_patients(patients: list, filters: dict = None) -> list:
    """Returns the filtered roster, most recent arrival first.

    Args:
        patients (list): The current patient records.
        filters (dict, optional): Any of `search_query`, `doctor`, `nurse`,
            `pending_study`, `process_state` and `hide_discharged`. Falsy
            values disable a filter.

    Returns:
        list: The matching patient records.
    """
    filters = filters or {}
    result = []
    for patient in patients:
        if filters.get("hide_discharged") and is_off_board(patient):
            continue
        if filters.get("doctor") and patient.get("doctor") != filters["doctor"]:
            continue
        if filters.get("nurse") and patient.get("nurse") != filters["nurse"]:
            continue
        if filters.get("process_state") and patient.get("process_state") != filters["process_state"]:
            continue
        if filters.get("pending_study") and not has_pending_study(patient, filters["pending_study"]):
            continue
        if not _matches_search(patient, filters.get("search_query") or ""):
            continue
        result.append(patient)

    result.sort(key=lambda p: parse_time(p.get("arrival_time")) or datetime.min, reverse=True)
    return result
