"""
This module provides the state container and command interface of ShiftBoard.

It defines the `ShiftBoardService` class, which is responsible for:
- Loading the active-shift and history documents from an injected storage and
  upgrading them to the current schema once, at load time.
- Exposing one method per board action (patients, process state, orders,
  admission, sticker notes, appointments, staff rosters, shift lifecycle).
  Each method applies a pure function from the core modules, replaces the
  document with the result and hands it to the storage.
- Answering the queries the UI needs (filtered roster, agenda, history).
- Owning the reminder polling task for the lifetime of the shift.

One service is shared by every browser session, so each command runs under a
re-entrant lock and the read-modify-replace of a document is never interleaved.

Unknown ids never raise: the matching method returns False (or None) and
nothing is saved.
"""
# shiftboard/board.py

import copy
import functools
import logging
import threading
from datetime import datetime

from shiftboard import appointments as appointments_core
from shiftboard import process_state as process_state_core
from shiftboard import roster
from shiftboard import shift as shift_core
from shiftboard import sticker_notes
from shiftboard.encryption import build_encryptor
from shiftboard.migrations import migrate_active_document, migrate_history_document
from shiftboard.storage import ACTIVE_SHIFT, HISTORY, EncryptedJsonStorage

logger = logging.getLogger(__name__)

STAFF_FIELDS = {"doctors": "doctor", "nurses": "nurse"}
OPTION_LISTS = {
    "study": "study_options",
    "followup": "followup_options",
    "precaution": "precaution_options",
    "discharge": "discharge_options",
}
FILTER_KEYS = {
    "search_query": "search_query",
    "doctor": "filter_doctor",
    "nurse": "filter_nurse",
    "pending_study": "filter_by_pending_study",
    "process_state": "filter_process_state",
    "hide_discharged": "hide_discharged_from_board",
}


def _synchronized(method):
    """Runs a service method while holding the service lock."""
    @functools.wraps(method)
    def wrapper(self, *args, **kwargs):
        with self._lock:
            return method(self, *args, **kwargs)
    return wrapper


class ShiftBoardService:
    """Holds the board's state and applies every change to it."""

    def __init__(self, storage=None):
        """Initializes the service and loads both documents.

        Args:
            storage (optional): The persistence port. Defaults to encrypted JSON
                files in the configured data directory.
        """
        self._lock = threading.RLock()
        self._storage = storage or EncryptedJsonStorage(build_encryptor())
        self._data = migrate_active_document(self._storage.load(ACTIVE_SHIFT))
        self._history = migrate_history_document(self._storage.load(HISTORY))
        self._reminder_task = None

    def _save_data(self):
        """Hands the active-shift document to the storage."""
        self._storage.save(ACTIVE_SHIFT, self._data)

    def _save_history(self):
        """Hands the history document to the storage."""
        self._storage.save(HISTORY, self._history)

    def _replace(self, **changes):
        self._data = dict(self._data, **changes)
        self._save_data()

    def _apply_patients(self, new_patients) -> bool:
        """Stores a new patient collection if it differs from the current one."""
        if new_patients is self._data["patients"]:
            return False
        self._replace(patients=new_patients)
        return True

    # Queries

    def get_data(self) -> dict:
        """Returns a deep copy of the active-shift document."""
        return copy.deepcopy(self._data)

    def get_patients(self) -> list:
        """Returns the live patient records (treat as read-only)."""
        return self._data["patients"]

    def get_patient(self, patient_id: str):
        """Returns the patient record with the given id, or None."""
        return roster.find_patient(self._data["patients"], patient_id)

    def get_filters(self) -> dict:
        """Returns the board filters stored with the active shift."""
        return {name: self._data.get(key) for name, key in FILTER_KEYS.items()}

    def list_active_patients(self, filters: dict = None) -> list:
        """Returns the filtered roster, most recent arrival first.

        Args:
            filters (dict, optional): Overrides the stored board filters.

        Returns:
            list: Matching patient records.
        """
        return roster.list_active_patients(self._data["patients"], filters if filters is not None else self.get_filters())

    def get_doctors(self) -> list:
        return list(self._data["doctors"])

    def get_nurses(self) -> list:
        return list(self._data["nurses"])

    def get_locations(self) -> list:
        return list(self._data["locations"])

    def get_note_options(self, note_type: str) -> list:
        """Returns the pick-list for a note type, or an empty list for free-text types."""
        key = OPTION_LISTS.get(note_type)
        return list(self._data.get(key) or []) if key else []

    def get_note_slot_preferences(self) -> dict:
        return dict(self._data["note_slot_preferences"])

    def is_shift_configured(self) -> bool:
        return bool(self._data.get("shift_configured"))

    def get_shift_date(self):
        return self._data.get("shift_date")

    def shift_summary(self) -> dict:
        """Counts the live roster the same way an end-of-shift snapshot does."""
        return shift_core.summarize_patients(self._data["patients"])

    def get_agenda(self, now: datetime = None) -> dict:
        """Groups all appointments on the board for the agenda panel."""
        return appointments_core.agenda(self._data["patients"], now or datetime.now())

    def get_history_dates(self) -> list:
        """Returns the dates with a saved shift, newest first."""
        return shift_core.available_dates(self._history)

    def load_shift(self, shift_date):
        """Returns a copy of the snapshot saved for `shift_date`, or None if there is none."""
        return shift_core.load_shift(self._history, shift_date)

    def get_viewing_date(self):
        return self._history.get("viewing_date")

    # Patients

    @_synchronized
    def add_patient(self, name: str, arrival_time=None, now=None, **fields) -> dict:
        """Adds a patient to the roster.

        Args:
            name (str): The patient's name.
            arrival_time (optional): Defaults to now.
            now (optional): Ignored unless `arrival_time` is missing.
            **fields: Optional `Patient` fields (triage_level, assigned_box,
                doctor, nurse, date_of_birth, m_number, chief_complaint,
                process_state).

        Returns:
            dict: The created patient record.
        """
        patients, record = roster.add_patient(self._data["patients"], name, arrival_time or now, **fields)
        self._apply_patients(patients)
        return record

    @_synchronized
    def update_patient_details(self, patient_id: str, details: dict) -> bool:
        """Updates name, date of birth, M-number or chief complaint."""
        return self._apply_patients(roster.update_details(self._data["patients"], patient_id, details))

    @_synchronized
    def set_process_state(self, patient_id: str, new_state: str, transferred_to: str = None, now=None) -> bool:
        """Moves a patient to a new process state (any known state is accepted)."""
        return self._apply_patients(
            process_state_core.set_process_state(
                self._data["patients"], patient_id, new_state, now=now, transferred_to=transferred_to
            )
        )

    @_synchronized
    def set_triage_level(self, patient_id: str, level: int, now=None) -> bool:
        return self._apply_patients(roster.set_triage_level(self._data["patients"], patient_id, level, now))

    @_synchronized
    def assign_doctor(self, patient_id: str, doctor: str, now=None) -> bool:
        return self._apply_patients(roster.assign_doctor(self._data["patients"], patient_id, doctor, now))

    @_synchronized
    def assign_nurse(self, patient_id: str, nurse: str, now=None) -> bool:
        return self._apply_patients(roster.assign_nurse(self._data["patients"], patient_id, nurse, now))

    @_synchronized
    def set_assigned_box(self, patient_id: str, box: str, now=None) -> bool:
        return self._apply_patients(roster.set_assigned_box(self._data["patients"], patient_id, box, now))

    @_synchronized
    def set_current_location(self, patient_id: str, location: str, now=None) -> bool:
        return self._apply_patients(roster.set_current_location(self._data["patients"], patient_id, location, now))

    @_synchronized
    def set_arrival_time(self, patient_id: str, arrival_time) -> bool:
        """Edits the arrival time; the event log is not reordered."""
        return self._apply_patients(roster.set_arrival_time(self._data["patients"], patient_id, arrival_time))

    # Orders and admission

    @_synchronized
    def add_order(self, patient_id: str, order_type: str, description: str, now=None) -> bool:
        return self._apply_patients(roster.add_order(self._data["patients"], patient_id, order_type, description, now))

    @_synchronized
    def advance_order_status(self, patient_id: str, order_id: str, timestamp=None) -> bool:
        """Moves an order to its next stage (ordered -> done -> reported)."""
        return self._apply_patients(
            roster.advance_order_status(self._data["patients"], patient_id, order_id, timestamp)
        )

    @_synchronized
    def start_admission(self, patient_id: str, now=None) -> bool:
        return self._apply_patients(roster.start_admission(self._data["patients"], patient_id, now))

    @_synchronized
    def update_admission(self, patient_id: str, data: dict) -> bool:
        """Updates admission fields; returns False if the patient has no admission record."""
        return self._apply_patients(roster.update_admission(self._data["patients"], patient_id, data))

    @_synchronized
    def complete_admission(self, patient_id: str, now=None) -> bool:
        return self._apply_patients(roster.complete_admission(self._data["patients"], patient_id, now))

    # Sticker notes

    @_synchronized
    def add_note(self, patient_id: str, note_type: str, text: str, now=None):
        """Adds a sticker note in its resolved slot.

        Returns:
            dict or None: The created note, or None if it could not be placed.
        """
        patients, note = sticker_notes.add_note(
            self._data["patients"], self._data["note_slot_preferences"], patient_id, note_type, text, now
        )
        self._apply_patients(patients)
        return note

    @_synchronized
    def move_note_to_slot(self, patient_id: str, note_id: str, target_slot: int) -> bool:
        """Moves a note to a slot, swapping with its occupant, and remembers the slot."""
        patients, preferences = sticker_notes.move_note_to_slot(
            self._data["patients"], self._data["note_slot_preferences"], patient_id, note_id, target_slot
        )
        if patients is self._data["patients"]:
            return False
        self._replace(patients=patients, note_slot_preferences=preferences)
        return True

    @_synchronized
    def toggle_note_completion(self, patient_id: str, note_id: str) -> bool:
        return self._apply_patients(sticker_notes.toggle_completion(self._data["patients"], patient_id, note_id))

    @_synchronized
    def remove_note(self, patient_id: str, note_id: str) -> bool:
        return self._apply_patients(sticker_notes.remove_note(self._data["patients"], patient_id, note_id))

    # Appointments

    @_synchronized
    def add_appointment(self, patient_id: str, appointment_type: str, scheduled_time,
                        reminder_minutes: int = 30, notes: str = None, now=None):
        """Schedules an appointment.

        Returns:
            dict or None: The created appointment, or None if it was rejected.
        """
        patients, appointment = appointments_core.add_appointment(
            self._data["patients"], patient_id, appointment_type, scheduled_time, reminder_minutes, notes, now
        )
        self._apply_patients(patients)
        return appointment

    @_synchronized
    def set_appointment_status(self, patient_id: str, appointment_id: str, status: str) -> bool:
        """Changes an appointment's status; illegal transitions return False."""
        return self._apply_patients(
            appointments_core.set_appointment_status(self._data["patients"], patient_id, appointment_id, status)
        )

    @_synchronized
    def mark_reminder_triggered(self, patient_id: str, appointment_id: str) -> bool:
        return self._apply_patients(
            appointments_core.mark_reminder_triggered(self._data["patients"], patient_id, appointment_id)
        )

    @_synchronized
    def start_reminders(self, notify, now=None):
        """Starts (or restarts) reminder polling for the current shift.

        Args:
            notify (callable): Receives each new reminder dictionary.
            now (datetime, optional): Time of the immediate first poll.

        Returns:
            ReminderTask: The running task.
        """
        self.stop_reminders()
        scheduler = appointments_core.AppointmentReminderScheduler(self, notify)
        self._reminder_task = appointments_core.ReminderTask(scheduler)
        self._reminder_task.start(now)
        return self._reminder_task

    @_synchronized
    def stop_reminders(self):
        """Cancels reminder polling, if running."""
        if self._reminder_task is not None:
            self._reminder_task.stop()
            self._reminder_task = None

    @property
    def reminder_task(self):
        return self._reminder_task

    @property
    def lock(self):
        """The re-entrant lock held by every command; sessions share one service."""
        return self._lock

    # Staff, locations and pick-lists

    @_synchronized
    def add_staff(self, roster_name: str, name: str) -> bool:
        """Adds a name to the 'doctors' or 'nurses' roster."""
        name = (name or "").strip()
        if roster_name not in STAFF_FIELDS or not name or name in self._data[roster_name]:
            return False
        self._replace(**{roster_name: self._data[roster_name] + [name]})
        return True

    @_synchronized
    def rename_staff(self, roster_name: str, old_name: str, new_name: str) -> bool:
        """Renames a staff member in the roster and on every patient assigned to them."""
        new_name = (new_name or "").strip()
        names = self._data.get(roster_name)
        if roster_name not in STAFF_FIELDS or old_name not in names or not new_name or new_name in names:
            return False
        self._replace(**{
            roster_name: [new_name if n == old_name else n for n in names],
            "patients": roster.rename_in_roster(self._data["patients"], STAFF_FIELDS[roster_name], old_name, new_name),
        })
        return True

    @_synchronized
    def remove_staff(self, roster_name: str, name: str) -> bool:
        """Removes a staff member; the last name on a roster cannot be removed."""
        names = self._data.get(roster_name)
        if roster_name not in STAFF_FIELDS or name not in names or len(names) <= 1:
            return False
        changes = {roster_name: [n for n in names if n != name]}
        filter_key = "filter_doctor" if roster_name == "doctors" else "filter_nurse"
        if self._data.get(filter_key) == name:
            changes[filter_key] = None
        self._replace(**changes)
        return True

    @_synchronized
    def add_location(self, name: str) -> bool:
        name = (name or "").strip()
        if not name or name in self._data["locations"]:
            return False
        self._replace(locations=self._data["locations"] + [name])
        return True

    @_synchronized
    def rename_location(self, old_name: str, new_name: str) -> bool:
        """Renames a location and moves every patient assigned to it."""
        new_name = (new_name or "").strip()
        locations = self._data["locations"]
        if old_name not in locations or not new_name or new_name in locations:
            return False
        patients = roster.rename_in_roster(self._data["patients"], "assigned_box", old_name, new_name)
        patients = roster.rename_in_roster(patients, "current_location", old_name, new_name)
        self._replace(locations=[new_name if loc == old_name else loc for loc in locations], patients=patients)
        return True

    @_synchronized
    def remove_location(self, name: str) -> bool:
        if name not in self._data["locations"]:
            return False
        self._replace(locations=[loc for loc in self._data["locations"] if loc != name])
        return True

    @_synchronized
    def add_note_option(self, note_type: str, value: str) -> bool:
        """Adds a value to a note type's pick-list."""
        key = OPTION_LISTS.get(note_type)
        value = (value or "").strip()
        if not key or not value or value in self._data[key]:
            return False
        self._replace(**{key: self._data[key] + [value]})
        return True

    @_synchronized
    def set_filter(self, name: str, value) -> bool:
        """Sets one board filter (see `FILTER_KEYS`)."""
        key = FILTER_KEYS.get(name)
        if key is None:
            return False
        self._replace(**{key: value})
        return True

    # Shift lifecycle

    @_synchronized
    def configure_shift(self, shift_date, physicians: list, nurses: list) -> bool:
        """Starts a new shift with an empty roster and the given staff."""
        self._data = shift_core.configure_shift(self._data, shift_date, physicians, nurses)
        self._save_data()
        logger.info("Configured shift %s", self._data["shift_date"])
        return True

    @_synchronized
    def load_previous_shift(self) -> bool:
        """Continues the shift found on load, keeping its roster."""
        self._data = shift_core.load_previous_shift(self._data)
        self._save_data()
        return True

    @_synchronized
    def end_shift(self, now=None):
        """Ends the shift, saving a snapshot when it has a date and patients.

        Returns:
            dict or None: The saved snapshot, or None if nothing was saved.
        """
        self.stop_reminders()
        self._data, history, snapshot = shift_core.end_shift(self._data, self._history, now)
        self._save_data()
        if snapshot is None:
            return None
        self._history = history
        self._save_history()
        return copy.deepcopy(snapshot)

    @_synchronized
    def reopen_shift(self, shift_date) -> bool:
        """Makes a saved shift the active one again; False if no snapshot exists."""
        reopened = shift_core.reopen_shift(self._data, self._history, shift_date)
        if reopened is None:
            logger.info("No saved shift for %s; nothing to reopen", shift_date)
            return False
        self._data = reopened
        self._save_data()
        return True

    @_synchronized
    def set_viewing_date(self, shift_date) -> bool:
        self._history = shift_core.set_viewing_date(self._history, shift_date)
        self._save_history()
        return True

    @_synchronized
    def clear_old_history(self, keep_days: int = None, today=None) -> int:
        """Drops old snapshots and returns how many were removed."""
        before = len(self._history["history"])
        self._history = shift_core.clear_old_history(self._history, keep_days, today)
        self._save_history()
        return before - len(self._history["history"])
