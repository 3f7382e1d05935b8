"""
Configuration values for the ShiftBoard application.

Values are plain module-level constants so that they can be read anywhere in
the package and overridden in tests with `monkeypatch.setattr`. A few of them
can be set from the environment when the Streamlit app is launched:

- `SHIFTBOARD_DATA_DIR`: directory holding the encrypted documents and key.
- `SHIFTBOARD_LOG_LEVEL`: logging level name (defaults to INFO).
"""
# shiftboard/config.py

import logging
import os

DATA_DIR = os.environ.get("SHIFTBOARD_DATA_DIR", ".")
ACTIVE_SHIFT_FILE = "active_shift.json"
HISTORY_FILE = "shift_history.json"
KEY_FILE = "secret.key"

LOG_LEVEL = os.environ.get("SHIFTBOARD_LOG_LEVEL", "INFO")
LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

# Reminder polling cadence, in seconds.
REMINDER_POLL_SECONDS = 30

# Number of sticker-note slots per patient (3x3 grid on the board).
TOTAL_NOTE_SLOTS = 9

# Snapshots older than this are dropped by `clear_old_history`.
HISTORY_RETENTION_DAYS = 30

PLACEHOLDER_STAFF_NAME = "Unassigned"

DEFAULT_DOCTORS = [
    "Dr. Smith",
    "Dr. Johnson",
    "Dr. Williams",
    "Dr. Brown",
    "Dr. Davis",
]

DEFAULT_NURSES = [
    "Nurse Kelly",
    "Nurse Byrne",
]

DEFAULT_LOCATIONS = [
    "Waiting Area",
    "Treatment",
    "Box 1",
    "Box 2",
    "Box 3",
    "Box 4",
    "Box 5",
    "Box 6",
    "CT Room",
    "MRI Room",
    "Resus",
]

DEFAULT_STUDY_OPTIONS = ["CT", "MRI", "X-Ray", "ECHO", "US", "ECG"]
DEFAULT_FOLLOWUP_OPTIONS = ["GP", "Fracture Clinic", "Surgical Clinic", "RACC"]
DEFAULT_PRECAUTION_OPTIONS = ["MRSA", "Isolation", "Flu A +", "COVID +"]
DEFAULT_DISCHARGE_OPTIONS = ["Home", "GP F/U", "Clinic", "RACC"]


def data_path(filename: str) -> str:
    """Returns the full path of a file inside the configured data directory."""
    return os.path.join(DATA_DIR, filename)


def configure_logging(level: str = None) -> None:
    """Configures root logging for the application.

    Args:
        level (str, optional): A logging level name. Defaults to `LOG_LEVEL`.
    """
    logging.basicConfig(
        level=getattr(logging, (level or LOG_LEVEL).upper(), logging.INFO),
        format=LOG_FORMAT,
    )
