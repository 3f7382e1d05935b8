"""
This module defines the data models and vocabularies for the ShiftBoard application.

Every record managed by the `ShiftBoardService` is stored as a plain,
JSON-compatible dictionary so that it can be persisted as-is. The classes below
build those dictionaries with consistent defaults, and the module-level tables
hold the fixed vocabularies (process states, note types, appointment types)
shared by the core components.
"""
# shiftboard/models.py

from datetime import datetime
import uuid

# Process states in board order, with their readable labels.
PROCESS_STATES = [
    ("registered", "Registered"),
    ("did_not_wait", "Did Not Wait"),
    ("to_be_seen", "To Be Seen"),
    ("awaiting_results", "Awaiting Results"),
    ("admission", "Admission"),
    ("admission_pending", "Admission Pending"),
    ("bed_assigned", "Bed Assigned"),
    ("ready_transfer", "Ready to Transfer"),
    ("admitted", "Admitted"),
    ("discharged", "Discharged"),
    ("transferred", "Transferred"),
]
PROCESS_STATE_LABELS = dict(PROCESS_STATES)

# States that belong to the admission workflow.
ADMISSION_STATES = ("admission", "admission_pending", "bed_assigned", "ready_transfer", "admitted")
# States in which the patient has left the active roster.
DEPARTED_STATES = ("discharged", "transferred")

TRIAGE_LEVELS = (1, 2, 3, 4, 5)
DEFAULT_TRIAGE_LEVEL = 3

ORDER_TYPES = ("lab", "xray", "scanner", "medication")
ORDER_STATUSES = ("ordered", "done", "reported")

NOTE_TYPES = {
    "study": "Study",
    "followup": "Follow-up",
    "precaution": "Precaution",
    "discharge": "Discharge",
    "critical": "Critical Result",
    "admitting": "Admitting Team",
    "note": "Note",
}

APPOINTMENT_TYPES = {
    "mri": {"label": "MRI", "abbrev": "MRI"},
    "ct": {"label": "CT Scan", "abbrev": "CT"},
    "us": {"label": "Ultrasound", "abbrev": "US"},
    "xray": {"label": "X-Ray", "abbrev": "XR"},
    "echo": {"label": "Echocardiogram", "abbrev": "ECHO"},
    "consult": {"label": "Consult", "abbrev": "CONS"},
    "procedure": {"label": "Procedure", "abbrev": "PROC"},
    "other": {"label": "Other", "abbrev": "OTH"},
}
APPOINTMENT_STATUSES = ("pending", "in_progress", "completed", "cancelled")
REMINDER_OPTIONS = (5, 10, 15, 30, 60)

BED_STATUSES = ("not_assigned", "assigned", "ready_to_transfer")

SPECIALTIES = [
    "Internal Medicine",
    "General Surgery",
    "Cardiology",
    "Orthopaedics",
    "Neurology",
    "Paediatrics",
]


def new_id() -> str:
    """Returns a short random identifier for a record."""
    return uuid.uuid4().hex[:9]


def now_iso() -> str:
    """Returns the current local time as an ISO-8601 string."""
    return datetime.now().replace(microsecond=0).isoformat()


def to_iso(value) -> str:
    """Normalises a datetime or ISO string to an ISO-8601 string.

    Args:
        value: A `datetime`, an ISO string, or None.

    Returns:
        str or None: The ISO string, or None when no value was given.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.replace(microsecond=0).isoformat()
    return str(value)


def parse_time(value):
    """Parses an ISO-8601 string (or passes a datetime through).

    Args:
        value: A `datetime`, an ISO string, or None.

    Returns:
        datetime or None: The parsed value, or None if it cannot be parsed.
    """
    if value is None or isinstance(value, datetime):
        return value
    try:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None
    # Board times are naive local times.
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone().replace(tzinfo=None)
    return parsed


def process_state_label(state: str) -> str:
    """Returns the readable label of a process state, or the raw value if unknown."""
    return PROCESS_STATE_LABELS.get(state, state)


class PatientEvent:
    """Represents one entry of a patient's append-only event log.

    Attributes:
        id (str): A unique identifier for the event.
        timestamp (str): ISO time the event refers to.
        type (str): The event type (e.g., 'arrival', 'process_state_change').
        description (str): Human-readable description.
    """
    def __init__(self, type, description, timestamp=None, id=None):
        self.id = id or new_id()
        self.timestamp = to_iso(timestamp) or now_iso()
        self.type = type
        self.description = description

    def to_dict(self) -> dict:
        return dict(self.__dict__)


class Order:
    """Represents an ancillary test or medication request.

    Attributes:
        id (str): A unique identifier for the order.
        type (str): One of `ORDER_TYPES`.
        description (str): What was ordered.
        status (str): One of `ORDER_STATUSES`.
        ordered_at (str): ISO time the order was placed.
        done_at (str): ISO time the order was carried out, if any.
        reported_at (str): ISO time the result was reported, if any.
    """
    def __init__(self, type, description, ordered_at=None, status="ordered", id=None):
        self.id = id or new_id()
        self.type = type
        self.description = description
        self.status = status
        self.ordered_at = to_iso(ordered_at) or now_iso()
        self.done_at = None
        self.reported_at = None

    def to_dict(self) -> dict:
        return dict(self.__dict__)


class StickerNote:
    """Represents a small categorised annotation placed in one of the patient's slots.

    Attributes:
        id (str): A unique identifier for the note.
        type (str): One of the keys of `NOTE_TYPES`.
        text (str): The note's text (e.g., 'CT', 'Trop 156').
        completed (bool): Completion flag, only present on study notes.
        slot_index (int): The slot the note occupies.
        created_at (str): ISO creation time.
    """
    def __init__(self, type, text, slot_index, created_at=None, id=None):
        self.id = id or new_id()
        self.type = type
        self.text = text
        if type == "study":
            self.completed = False
        self.slot_index = slot_index
        self.created_at = to_iso(created_at) or now_iso()

    def to_dict(self) -> dict:
        return dict(self.__dict__)


class Appointment:
    """Represents a scheduled ancillary event (imaging, consult) with a reminder.

    Attributes:
        id (str): A unique identifier for the appointment.
        type (str): One of the keys of `APPOINTMENT_TYPES`.
        scheduled_time (str): ISO time of the appointment.
        reminder_minutes (int): How long before `scheduled_time` the reminder opens.
        notes (str): Optional free text.
        status (str): One of `APPOINTMENT_STATUSES`.
        reminder_triggered (bool): Whether the reminder has already fired.
        created_at (str): ISO creation time.
    """
    def __init__(self, type, scheduled_time, reminder_minutes=30, notes=None, created_at=None, id=None):
        self.id = id or new_id()
        self.type = type
        self.scheduled_time = to_iso(scheduled_time)
        self.reminder_minutes = int(reminder_minutes)
        self.notes = notes or None
        self.status = "pending"
        self.reminder_triggered = False
        self.created_at = to_iso(created_at) or now_iso()

    def to_dict(self) -> dict:
        return dict(self.__dict__)


class AdmissionRecord:
    """Tracks a patient's transition into inpatient care.

    Attributes:
        specialty (str): Admitting specialty.
        consultant_name (str): Admitting consultant.
        bed_number (str): Assigned bed, if any.
        bed_status (str): One of `BED_STATUSES`.
        registrar_called (bool): Whether the registrar has been contacted.
        admin_complete (bool): Administrative admission done.
        id_bracelet_verified (bool): Safety checklist item.
        mrsa_swabs (bool): Safety checklist item.
        falls_assessment (bool): Safety checklist item.
        handover_notes (str): Free-text handover.
        started_at (str): ISO time the admission workflow started.
        completed_at (str): ISO time the admission was completed, if any.
    """
    FIELDS = (
        "specialty", "consultant_name", "bed_number", "bed_status",
        "registrar_called", "admin_complete", "id_bracelet_verified",
        "mrsa_swabs", "falls_assessment", "handover_notes",
    )

    def __init__(self, started_at=None):
        self.specialty = ""
        self.consultant_name = ""
        self.bed_number = ""
        self.bed_status = "not_assigned"
        self.registrar_called = False
        self.admin_complete = False
        self.id_bracelet_verified = False
        self.mrsa_swabs = False
        self.falls_assessment = False
        self.handover_notes = ""
        self.started_at = to_iso(started_at) or now_iso()
        self.completed_at = None

    def to_dict(self) -> dict:
        return dict(self.__dict__)


class Patient:
    """Represents a patient on the shift's board; the aggregate root of the data model.

    Attributes:
        id (str): A unique identifier for the patient.
        name (str): Full name.
        date_of_birth (str): Date of birth as entered.
        m_number (str): Hospital record number.
        chief_complaint (str): Presenting complaint.
        triage_level (int): 1 (most urgent) to 5.
        process_state (str): One of the values of `PROCESS_STATES`.
        assigned_box (str): The bay the patient is assigned to.
        current_location (str): Where the patient is now (may differ, e.g. at imaging).
        doctor (str): Assigned physician name.
        nurse (str): Assigned nurse name.
        arrival_time (str): ISO arrival time.
        discharged_at (str): ISO time the patient left via discharge or transfer.
        transferred_to (str): Transfer destination, if any.
        orders (list): Order records.
        sticker_notes (list): StickerNote records.
        appointments (list): Appointment records.
        events (list): PatientEvent records, append-only.
        admission (dict): AdmissionRecord, once started.
    """
    def __init__(self, name, arrival_time=None, triage_level=DEFAULT_TRIAGE_LEVEL, assigned_box="",
                 doctor="", nurse="", date_of_birth="", m_number="", chief_complaint="",
                 process_state="registered", id=None):
        self.id = id or new_id()
        self.name = name
        self.date_of_birth = date_of_birth
        self.m_number = m_number
        self.chief_complaint = chief_complaint
        self.triage_level = int(triage_level)
        self.process_state = process_state
        self.assigned_box = assigned_box
        self.current_location = assigned_box
        self.doctor = doctor
        self.nurse = nurse
        self.arrival_time = to_iso(arrival_time) or now_iso()
        self.discharged_at = None
        self.transferred_to = None
        self.orders = []
        self.sticker_notes = []
        self.appointments = []
        self.events = [
            PatientEvent("arrival", "Patient arrived at ED", timestamp=self.arrival_time).to_dict()
        ]
        self.admission = None

    def to_dict(self) -> dict:
        return dict(self.__dict__)
