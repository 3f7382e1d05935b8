"""
This module governs a patient's discrete workflow state.

Transitions are not validated against a graph: any known state can be set from
any other, and the board is trusted to offer sensible choices. Every transition
appends a 'process_state_change' event to the patient's log. Entering one of the
admission states creates an empty admission record when none exists yet, and
entering or leaving a departed state (discharged, transferred) keeps the
`discharged_at` stamp in step.
"""
# shiftboard/process_state.py

import logging
from datetime import datetime

from shiftboard.models import (
    ADMISSION_STATES,
    DEPARTED_STATES,
    PROCESS_STATE_LABELS,
    AdmissionRecord,
    process_state_label,
    to_iso,
)
from shiftboard.roster import append_event, update_patient

logger = logging.getLogger(__name__)


def is_known_state(state: str) -> bool:
    """Whether `state` is one of the board's process states."""
    return state in PROCESS_STATE_LABELS


def transition_description(state: str, transferred_to: str = None) -> str:
    """Builds the event description for a transition into `state`."""
    label = process_state_label(state)
    if state == "transferred" and transferred_to:
        return f"Process state changed to: {label} to {transferred_to}"
    return f"Process state changed to: {label}"


def set_process_state(patients: list, patient_id: str, new_state: str, now=None, transferred_to: str = None) -> list:
    """Moves a patient to `new_state` and records the change.

    Args:
        patients (list): The current patient records.
        patient_id (str): The id of the patient.
        new_state (str): Any value of `PROCESS_STATES`.
        now (datetime, optional): The transition time. Defaults to now.
        transferred_to (str, optional): Destination, used with 'transferred'.

    Returns:
        list: The new patient collection, or the original one if the patient or
            the state is unknown.
    """
    if not is_known_state(new_state):
        logger.warning("Ignoring unknown process state %r for patient %s", new_state, patient_id)
        return patients
    stamp = to_iso(now or datetime.now())

    def change(patient):
        patient["process_state"] = new_state
        append_event(patient, "process_state_change", transition_description(new_state, transferred_to), stamp)

        if new_state in ADMISSION_STATES and not patient.get("admission"):
            patient["admission"] = AdmissionRecord(started_at=stamp).to_dict()

        if new_state in DEPARTED_STATES:
            if not patient.get("discharged_at"):
                patient["discharged_at"] = stamp
            if new_state == "transferred":
                patient["transferred_to"] = transferred_to or patient.get("transferred_to")
        else:
            patient["discharged_at"] = None
            patient["transferred_to"] = None

    return update_patient(patients, patient_id, change)


def discharge_patient(patients: list, patient_id: str, now=None) -> list:
    """Shortcut for a transition to 'discharged'."""
    return set_process_state(patients, patient_id, "discharged", now=now)


def transfer_patient(patients: list, patient_id: str, destination: str, now=None) -> list:
    """Shortcut for a transition to 'transferred' with a destination."""
    return set_process_state(patients, patient_id, "transferred", now=now, transferred_to=destination)
