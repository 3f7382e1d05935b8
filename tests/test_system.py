"""
System tests for the ShiftBoard application.

These tests run the service against encrypted files on disk, the way the
Streamlit app does: documents are written, the service is recreated from the
files, legacy files are upgraded on load and unreadable files are replaced.
"""
import json
import os
from datetime import datetime

from cryptography.fernet import Fernet

from shiftboard import config
from shiftboard import encryption
from shiftboard.board import ShiftBoardService
from shiftboard.storage import ACTIVE_SHIFT, HISTORY, EncryptedJsonStorage


def test_documents_are_encrypted_at_rest(file_storage, data_dir):
    """
    Tests that the stored files are not readable JSON but decrypt to the documents.
    """
    service = ShiftBoardService(storage=file_storage)
    service.configure_shift("2026-01-25", ["Dr. Ahmed"], ["Nurse Kelly"])
    service.add_patient("Rose Fagan")

    path = file_storage.path_for(ACTIVE_SHIFT)
    assert path == os.path.join(str(data_dir), config.ACTIVE_SHIFT_FILE)
    with open(path, "r", encoding="utf-8") as f:
        raw = f.read()
    assert "Rose Fagan" not in raw
    assert file_storage.load(ACTIVE_SHIFT)["patients"][0]["name"] == "Rose Fagan"


def test_full_day_survives_restarts(file_storage, fernet, data_dir):
    """
    Tests a whole day across process restarts: configure, work, end the
    shift, then reopen it from a new service instance.
    """
    service = ShiftBoardService(storage=file_storage)
    service.configure_shift("2026-01-25", ["Dr. Ahmed"], ["Nurse Kelly"])
    patient = service.add_patient("Sam Cullen", arrival_time="2026-01-25T07:45:00")
    service.add_note(patient["id"], "study", "MRI")
    service.add_appointment(patient["id"], "mri", datetime(2026, 1, 25, 11, 0), 15)

    restarted = ShiftBoardService(storage=EncryptedJsonStorage(fernet, data_dir=str(data_dir)))
    assert restarted.is_shift_configured()
    assert restarted.get_patients()[0]["sticker_notes"][0]["text"] == "MRI"

    snapshot = restarted.end_shift(now=datetime(2026, 1, 25, 20, 0))
    assert snapshot["summary"]["total_patients"] == 1

    next_day = ShiftBoardService(storage=EncryptedJsonStorage(fernet, data_dir=str(data_dir)))
    assert not next_day.is_shift_configured()
    assert next_day.get_history_dates() == ["2026-01-25"]
    assert next_day.reopen_shift("2026-01-25") is True
    assert next_day.get_patients()[0]["appointments"][0]["type"] == "mri"


def test_legacy_file_is_upgraded_on_load(file_storage):
    """
    Tests that a stored v1 document is migrated when the service starts.
    """
    file_storage.save(ACTIVE_SHIFT, {
        "patients": [{"id": "old1", "name": "Tom Legacy", "box": "Box 3", "status": "review",
                      "doctor": "Dr. Smith", "arrival_time": "2026-01-24T23:00:00",
                      "orders": [], "events": []}],
        "doctors": ["Dr. Smith"],
        "shift_date": "2026-01-24",
        "shift_configured": True,
    })

    service = ShiftBoardService(storage=file_storage)

    patient = service.get_patient("old1")
    assert patient["process_state"] == "awaiting_results"
    assert patient["assigned_box"] == "Box 3"
    assert patient["appointments"] == []
    assert service.get_data()["version"] == 3
    assert service.set_triage_level("old1", 2) is True
    assert file_storage.load(ACTIVE_SHIFT)["patients"][0]["triage_level"] == 2


def test_unreadable_files_start_fresh(file_storage, data_dir, caplog):
    """
    Tests that a document encrypted with another key or holding no JSON
    object is logged and replaced by a fresh document.
    """
    other = Fernet(Fernet.generate_key())
    with open(file_storage.path_for(ACTIVE_SHIFT), "w", encoding="utf-8") as f:
        f.write(other.encrypt(b'{"patients": []}').decode())
    with open(file_storage.path_for(HISTORY), "w", encoding="utf-8") as f:
        f.write("")

    with caplog.at_level("WARNING"):
        service = ShiftBoardService(storage=file_storage)

    assert "Could not load" in caplog.text
    assert service.get_patients() == []
    assert service.get_history_dates() == []

    file_storage.save(HISTORY, ["not", "a", "dict"])
    assert file_storage.load(HISTORY) is None


def test_missing_files_load_as_none(file_storage):
    """
    Tests that missing documents load as None.
    """
    assert file_storage.load(ACTIVE_SHIFT) is None
    assert file_storage.load(HISTORY) is None


def test_key_is_created_once_and_reused(data_dir):
    """
    Tests that the encryption key is generated on first use and then reused.
    """
    key_path = config.data_path(config.KEY_FILE)
    assert not os.path.exists(key_path)

    first = encryption.build_encryptor()
    assert os.path.exists(key_path)
    second = encryption.build_encryptor()

    token = first.encrypt(json.dumps({"a": 1}).encode())
    assert json.loads(second.decrypt(token)) == {"a": 1}
    assert encryption.load_key(key_path) == encryption.load_or_create_key(key_path)


def test_default_service_uses_encrypted_files(data_dir):
    """
    Tests that a service created without a storage writes encrypted files in the data directory.
    """
    service = ShiftBoardService()
    service.configure_shift("2026-01-25", ["Dr. Ahmed"], ["Nurse Kelly"])
    assert os.path.exists(os.path.join(str(data_dir), config.ACTIVE_SHIFT_FILE))
    assert os.path.exists(os.path.join(str(data_dir), config.KEY_FILE))
