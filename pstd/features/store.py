"""
Filesystem-backed paste storage.

Each paste is one file in the paste directory, named after its ID. Writes
use exclusive creation so an existing paste is never overwritten.
"""

"""
Copyright 2025 Chris Bunting
File: store.py | Purpose: Flat-file paste store
@author Chris Bunting | @version 1.0.0

CHANGELOG:
2025-09-01 - Chris Bunting: Initial implementation
"""

import os
import re
import logging
from pathlib import Path
from typing import Union

logger = logging.getLogger("pstd.store")

_VALID_ID = re.compile(r"[A-Za-z0-9]+")


class PasteStoreError(Exception):
    """Base class for paste store errors."""
    pass


class PasteNotFound(PasteStoreError):
    pass


class PasteExists(PasteStoreError):
    pass


class PasteStore:
    """Key to blob mapping stored as flat files.

    Attributes:
        directory: Directory holding one file per paste
    """

    def __init__(self, directory: Union[str, Path]):
        self.directory = Path(directory)

    def validate(self) -> None:
        """Check that the paste directory is usable.

        Raises:
            PasteStoreError: If the directory is missing or not writable
        """
        if not self.directory.is_dir():
            raise PasteStoreError(f"Could not access paste directory '{self.directory}'")
        if not os.access(self.directory, os.W_OK | os.X_OK):
            raise PasteStoreError(f"Paste directory '{self.directory}' is not writable")

    def _path(self, paste_id: str) -> Path:
        if not _VALID_ID.fullmatch(paste_id):
            raise ValueError(f"Invalid paste ID: {paste_id!r}")
        return self.directory / paste_id

    def exists(self, paste_id: str) -> bool:
        return self._path(paste_id).exists()

    def read(self, paste_id: str) -> bytes:
        """Return the content of a paste.

        Raises:
            PasteNotFound: If no paste has this ID
            OSError: If the file exists but cannot be read
        """
        try:
            return self._path(paste_id).read_bytes()
        except FileNotFoundError:
            raise PasteNotFound(paste_id)

    def write(self, paste_id: str, data: bytes) -> None:
        """Create a new paste.

        Raises:
            PasteExists: If a paste with this ID already exists
            OSError: If the file cannot be created or written
        """
        path = self._path(paste_id)
        try:
            fh = open(path, "xb")
        except FileExistsError:
            raise PasteExists(paste_id)

        try:
            with fh:
                fh.write(data)
        except OSError:
            # Do not leave a truncated paste behind
            try:
                path.unlink()
            except OSError:
                pass
            raise

    def replace(self, paste_id: str, data: bytes) -> None:
        """Create or overwrite a paste.

        Only used for server-provided pastes such as the client script;
        submitted pastes always go through ``write``.
        """
        path = self._path(paste_id)
        tmp = path.with_name(f".{paste_id}.tmp")
        tmp.write_bytes(data)
        os.replace(tmp, path)
