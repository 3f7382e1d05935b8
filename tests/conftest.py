"""
Pytest configuration file for the ShiftBoard test suite.

This file defines shared fixtures used across the test files:
- Services backed by in-memory storage for fast unit and integration tests.
- Services backed by encrypted files in a temporary directory, with a real
  Fernet key, for persistence and system tests.
- A fixed clock and small helpers for building patient records.
"""
from datetime import datetime

import pytest
from cryptography.fernet import Fernet

from shiftboard import config
from shiftboard.board import ShiftBoardService
from shiftboard.models import Patient
from shiftboard.storage import EncryptedJsonStorage, InMemoryStorage


@pytest.fixture
def now():
    """A fixed 'current time' used across tests."""
    return datetime(2026, 1, 25, 13, 30)


@pytest.fixture
def storage():
    """Provides an empty in-memory storage."""
    return InMemoryStorage()


@pytest.fixture
def service(storage):
    """Provides a ShiftBoardService with an in-memory storage and no running shift."""
    return ShiftBoardService(storage=storage)


@pytest.fixture
def configured_service(service):
    """Provides a service with a configured shift for 2026-01-25."""
    service.configure_shift("2026-01-25", ["Dr. Ahmed", "Dr. Byrne"], ["Nurse Kelly"])
    return service


@pytest.fixture
def data_dir(tmp_path, monkeypatch):
    """Points the configured data directory at a temporary path."""
    monkeypatch.setattr(config, "DATA_DIR", str(tmp_path))
    return tmp_path


@pytest.fixture
def fernet():
    """Provides a Fernet instance with a freshly generated key."""
    return Fernet(Fernet.generate_key())


@pytest.fixture
def file_storage(data_dir, fernet):
    """Provides encrypted file storage in the temporary data directory."""
    return EncryptedJsonStorage(fernet, data_dir=str(data_dir))


@pytest.fixture
def make_patient():
    """Returns a factory for patient records (not added to any service)."""
    def factory(name="Test Patient", **fields):
        return Patient(name, arrival_time=fields.pop("arrival_time", "2026-01-25T08:00:00"), **fields).to_dict()

    return factory
