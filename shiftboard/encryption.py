"""
This module manages the key used to encrypt ShiftBoard's documents at rest.

It uses the `cryptography` library (Fernet symmetric encryption). The key is
stored in a key file inside the data directory and generated on first use, so
the application can start without any manual setup.

Security Note: the key file is critical. It must be kept secure and should not
be committed to version control.
"""
# shiftboard/encryption.py

import logging
import os

from cryptography.fernet import Fernet

from shiftboard import config

logger = logging.getLogger(__name__)


def write_key(key_path: str) -> bytes:
    """Generates a new Fernet key and saves it to `key_path`.

    Returns:
        bytes: The generated key.
    """
    key = Fernet.generate_key()
    directory = os.path.dirname(key_path)
    if directory:
        os.makedirs(directory, exist_ok=True)
    with open(key_path, "wb") as key_file:
        key_file.write(key)
    return key


def load_key(key_path: str) -> bytes:
    """Loads the Fernet key from `key_path`.

    Returns:
        bytes: The encryption key.
    """
    with open(key_path, "rb") as key_file:
        return key_file.read()


def load_or_create_key(key_path: str = None) -> bytes:
    """Loads the key, generating and saving a new one if the file does not exist."""
    key_path = key_path or config.data_path(config.KEY_FILE)
    try:
        return load_key(key_path)
    except FileNotFoundError:
        logger.warning("Encryption key not found at %s; generating a new one.", key_path)
        return write_key(key_path)


def build_encryptor(key_path: str = None) -> Fernet:
    """Returns a Fernet instance for the application's key."""
    return Fernet(load_or_create_key(key_path))
