"""
This module schedules ancillary appointments and raises their reminders.

It provides:
- Pure functions to add appointments, change their status and build the agenda.
- `find_due_reminders`, which lists pending appointments whose reminder window
  (`scheduled_time - reminder_minutes` up to `scheduled_time`) contains `now`.
- `AppointmentReminderScheduler`, which flags due appointments as reminded in the
  persisted data and emits one notification per appointment per session.
- `ReminderTask`, a cancellable polling handle driven by the host loop.

A reminder window that passes while nothing is polling is simply missed; it is
never fired afterwards. Such appointments show up as overdue in the agenda
(negative `minutes_until`).
"""
# shiftboard/appointments.py

from __future__ import annotations

import logging
import math
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional, Set, Tuple

from shiftboard import config
from shiftboard.models import APPOINTMENT_TYPES, Appointment, parse_time
from shiftboard.roster import update_patient

logger = logging.getLogger(__name__)

# Legal status changes; 'completed' and 'cancelled' are terminal.
ALLOWED_TRANSITIONS = {
    "pending": {"in_progress", "completed", "cancelled"},
    "in_progress": {"completed", "cancelled"},
    "completed": set(),
    "cancelled": set(),
}

UPCOMING_WINDOW_MINUTES = 60


def can_transition(current: str, target: str) -> bool:
    """Whether an appointment may move from `current` to `target`."""
    return target in ALLOWED_TRANSITIONS.get(current, set())


def minutes_until(appointment: dict, now: datetime) -> Optional[int]:
    """Whole minutes until the appointment, rounded up; negative once it is past."""
    scheduled = parse_time(appointment.get("scheduled_time"))
    if scheduled is None:
        return None
    return math.ceil((scheduled - now).total_seconds() / 60)


def patient_location(patient: dict) -> str:
    """The location shown on a reminder for this patient."""
    return patient.get("assigned_box") or patient.get("current_location") or "Unknown"


def add_appointment(patients: list, patient_id: str, appointment_type: str, scheduled_time,
                    reminder_minutes: int = 30, notes: Optional[str] = None, now=None) -> Tuple[list, Optional[dict]]:
    """Schedules a new pending appointment for a patient.

    Returns:
        A tuple of the new patient list and the appointment record, or the
        original list and None when the type is unknown or the patient is missing.
    """
    if appointment_type not in APPOINTMENT_TYPES or scheduled_time is None:
        return patients, None
    appointment = Appointment(
        appointment_type,
        scheduled_time,
        reminder_minutes=reminder_minutes,
        notes=(notes or "").strip() or None,
        created_at=now,
    ).to_dict()

    def change(patient):
        patient.setdefault("appointments", []).append(appointment)

    updated = update_patient(patients, patient_id, change)
    if updated is patients:
        return patients, None
    return updated, dict(appointment)


def set_appointment_status(patients: list, patient_id: str, appointment_id: str, status: str) -> list:
    """Moves an appointment to `status` if the transition is legal.

    Illegal transitions (anything out of a terminal status, or back to
    'pending') leave the collection unchanged. No event is logged.
    """
    def change(patient):
        for appointment in patient.get("appointments", []):
            if appointment.get("id") != appointment_id:
                continue
            current = appointment.get("status", "pending")
            if not can_transition(current, status):
                logger.warning(
                    "Rejected appointment %s status change %s -> %s", appointment_id, current, status
                )
                return False
            appointment["status"] = status
            return True
        return False

    return update_patient(patients, patient_id, change)


def mark_reminder_triggered(patients: list, patient_id: str, appointment_id: str) -> list:
    """Sets the persisted `reminder_triggered` flag of an appointment."""
    def change(patient):
        for appointment in patient.get("appointments", []):
            if appointment.get("id") == appointment_id:
                if appointment.get("reminder_triggered"):
                    return False
                appointment["reminder_triggered"] = True
                return True
        return False

    return update_patient(patients, patient_id, change)


def is_in_reminder_window(appointment: dict, now: datetime) -> bool:
    """Whether `now` lies in [scheduled_time - reminder_minutes, scheduled_time)."""
    scheduled = parse_time(appointment.get("scheduled_time"))
    if scheduled is None:
        return False
    window_start = scheduled - timedelta(minutes=appointment.get("reminder_minutes") or 0)
    return window_start <= now < scheduled


def find_due_reminders(patients: list, now: datetime) -> List[Dict]:
    """Lists the pending, not-yet-reminded appointments whose reminder window is open.

    Args:
        patients: The current patient records.
        now: The time to evaluate against.

    Returns:
        A list of reminder dictionaries with the patient and appointment details.
    """
    reminders = []
    for patient in patients:
        for appointment in patient.get("appointments") or []:
            if appointment.get("status") != "pending" or appointment.get("reminder_triggered"):
                continue
            if not is_in_reminder_window(appointment, now):
                continue
            reminders.append({
                "patient_id": patient.get("id"),
                "patient_name": patient.get("name"),
                "appointment_id": appointment.get("id"),
                "type": appointment.get("type"),
                "scheduled_time": appointment.get("scheduled_time"),
                "location": patient_location(patient),
                "minutes_until": minutes_until(appointment, now),
                "notes": appointment.get("notes"),
            })
    return reminders


def reminder_message(reminder: dict) -> str:
    """Formats a reminder for display in a notification."""
    label = APPOINTMENT_TYPES.get(reminder.get("type"), {}).get("label", reminder.get("type"))
    scheduled = parse_time(reminder.get("scheduled_time"))
    time_text = scheduled.strftime("%H:%M") if scheduled else "?"
    return (
        f"{label} for {reminder.get('patient_name')} in {reminder.get('minutes_until')} min "
        f"(at {time_text}, {reminder.get('location')})"
    )


def agenda(patients: list, now: datetime) -> Dict[str, List[Dict]]:
    """Groups every appointment on the board for the agenda panel.

    Returns:
        A dictionary with the keys 'upcoming' (pending, due within the next
        hour), 'later' (pending, further out), 'overdue' (pending, past),
        'in_progress' and 'done' (completed or cancelled). Each list is sorted
        by scheduled time.
    """
    items = []
    for patient in patients:
        for appointment in patient.get("appointments") or []:
            if parse_time(appointment.get("scheduled_time")) is None:
                continue
            items.append({
                "patient_id": patient.get("id"),
                "patient_name": patient.get("name"),
                "patient_box": patient_location(patient),
                "appointment": appointment,
                "minutes_until": minutes_until(appointment, now),
            })
    items.sort(key=lambda item: parse_time(item["appointment"].get("scheduled_time")))

    groups = {"upcoming": [], "later": [], "overdue": [], "in_progress": [], "done": []}
    for item in items:
        status = item["appointment"].get("status")
        if status == "pending":
            if item["minutes_until"] < 0:
                groups["overdue"].append(item)
            elif item["minutes_until"] <= UPCOMING_WINDOW_MINUTES:
                groups["upcoming"].append(item)
            else:
                groups["later"].append(item)
        elif status == "in_progress":
            groups["in_progress"].append(item)
        else:
            groups["done"].append(item)
    return groups


class AppointmentReminderScheduler:
    """Raises reminders for appointments entering their reminder window."""

    def __init__(self, board_service, notify: Callable[[Dict], None]) -> None:
        """Initializes the scheduler.

        Args:
            board_service: The `ShiftBoardService` holding the patient collection.
            notify: Called once with each new reminder dictionary.
        """
        self._service = board_service
        self._notify = notify
        self._notified: Set[Tuple[str, str]] = set()

    def check_reminders(self, now: Optional[datetime] = None) -> List[Dict]:
        """Flags and announces every appointment whose reminder is due.

        Returns:
            The reminders found due on this poll.
        """
        now = now or datetime.now()
        with self._service.lock:
            due = find_due_reminders(self._service.get_patients(), now)
            for reminder in due:
                key = (reminder["patient_id"], reminder["appointment_id"])
                self._service.mark_reminder_triggered(*key)
                if key in self._notified:
                    continue
                self._notified.add(key)
                logger.info("Reminder: %s", reminder_message(reminder))
                self._notify(reminder)
        return due


class ReminderTask:
    """A cancellable polling handle for the reminder scheduler.

    The task does not own a thread. The host loop (the Streamlit autorefresh
    rerun) calls `run_pending`, which polls once the interval has elapsed.
    """

    def __init__(self, scheduler: AppointmentReminderScheduler, interval_seconds: Optional[int] = None) -> None:
        self._scheduler = scheduler
        self._interval = timedelta(seconds=interval_seconds or config.REMINDER_POLL_SECONDS)
        self._active = False
        self._next_run: Optional[datetime] = None

    @property
    def active(self) -> bool:
        return self._active

    def start(self, now: Optional[datetime] = None) -> List[Dict]:
        """Activates the task and polls immediately."""
        self._active = True
        self._next_run = None
        return self.run_pending(now)

    def run_pending(self, now: Optional[datetime] = None) -> List[Dict]:
        """Polls if the task is active and the interval has elapsed."""
        if not self._active:
            return []
        now = now or datetime.now()
        if self._next_run is not None and now < self._next_run:
            return []
        self._next_run = now + self._interval
        return self._scheduler.check_reminders(now)

    def stop(self) -> None:
        """Cancels the task; later `run_pending` calls do nothing."""
        self._active = False
        self._next_run = None
