"""
This module provides the persistence port used by the `ShiftBoardService`.

The service keeps two independent documents, the active shift and the shift
history, and hands each one to its storage after every change. Two
implementations are provided:

- `EncryptedJsonStorage` writes each document as Fernet-encrypted JSON in the
  data directory.
- `InMemoryStorage` keeps copies of the documents in memory, for tests and for
  previewing the board without touching disk.

`load` returns None when a document does not exist yet or cannot be read, so
the service can start from a fresh document.
"""
# shiftboard/storage.py

import copy
import json
import logging
import os

from cryptography.fernet import InvalidToken

from shiftboard import config

logger = logging.getLogger(__name__)

ACTIVE_SHIFT = "active_shift"
HISTORY = "history"


class InMemoryStorage:
    """Keeps documents in a dictionary."""

    def __init__(self, documents: dict = None):
        self.documents = copy.deepcopy(documents or {})
        self.save_count = 0

    def load(self, name: str):
        """Returns a copy of the named document, or None if it was never saved."""
        document = self.documents.get(name)
        return copy.deepcopy(document) if document is not None else None

    def save(self, name: str, document: dict) -> None:
        """Stores a copy of the document under `name`."""
        self.documents[name] = copy.deepcopy(document)
        self.save_count += 1


class EncryptedJsonStorage:
    """Stores each document as an encrypted JSON file."""

    def __init__(self, encryptor, data_dir: str = None, filenames: dict = None):
        """Initializes the storage.

        Args:
            encryptor: An object with `encrypt(bytes)` and `decrypt(bytes)`
                methods, normally a `cryptography.fernet.Fernet`.
            data_dir (str, optional): Where the files live. Defaults to
                `config.DATA_DIR`.
            filenames (dict, optional): Document name to file name.
        """
        self._encryptor = encryptor
        self._data_dir = data_dir or config.DATA_DIR
        self._filenames = filenames or {
            ACTIVE_SHIFT: config.ACTIVE_SHIFT_FILE,
            HISTORY: config.HISTORY_FILE,
        }

    def path_for(self, name: str) -> str:
        return os.path.join(self._data_dir, self._filenames.get(name, f"{name}.json"))

    def load(self, name: str):
        """Loads and decrypts a document.

        Returns:
            dict or None: The document, or None if the file is missing, empty,
                cannot be decrypted or does not hold a JSON object.
        """
        path = self.path_for(name)
        try:
            with open(path, "r", encoding="utf-8") as f:
                encrypted_data = f.read()
            if not encrypted_data:
                return None
            decrypted_data = self._encryptor.decrypt(encrypted_data.encode()).decode()
            document = json.loads(decrypted_data)
        except FileNotFoundError:
            return None
        except (InvalidToken, json.JSONDecodeError) as e:
            # A corrupt or foreign file is replaced by a fresh document on the next save.
            logger.warning("Could not load %s (%s). Starting with a new document.", path, e)
            return None
        if not isinstance(document, dict):
            logger.warning("Ignoring %s: expected a JSON object.", path)
            return None
        return document

    def save(self, name: str, document: dict) -> None:
        """Encrypts and writes a document."""
        os.makedirs(self._data_dir, exist_ok=True)
        data_to_encrypt = json.dumps(document, indent=4)
        encrypted_data = self._encryptor.encrypt(data_to_encrypt.encode())
        with open(self.path_for(name), "w", encoding="utf-8") as f:
            f.write(encrypted_data.decode())
