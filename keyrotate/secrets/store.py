"""Durable JSON storage of secret documents, one file per store identity."""

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional, Union

from keyrotate.utils.errors import (
    SecretCorruptionError,
    SecretStoreError,
    ValidationError,
    create_error_suggestions,
)
from keyrotate.utils.files import FileManager

from .ledger import SecretDocument, validate_document

logger = logging.getLogger(__name__)

DEFAULT_SECRETS_FILE = "secrets.json"
LOCK_SUFFIX = ".lock"


class SecretStore:
    """Loads and saves whole secret documents.

    Each store identity (a user handle) owns the directory
    ``<data_root>/<identity>/`` and the document file inside it. Saves replace
    the file atomically, so a reader never sees a partially written document.
    """

    def __init__(
        self,
        data_root: Union[str, Path],
        secrets_file: str = DEFAULT_SECRETS_FILE,
        file_manager: Optional[FileManager] = None,
    ):
        """
        Initialize secret store.

        Args:
            data_root: Directory holding one sub-directory per identity
            secrets_file: Document file name inside an identity directory
            file_manager: File helper (injected in tests)
        """
        self.data_root = Path(data_root).expanduser()
        self.secrets_file = secrets_file
        self.file_manager = file_manager or FileManager()

    def path_for(self, identity: str) -> Path:
        """
        Get the document path of an identity.

        Raises:
            ValidationError: If the identity is empty or would escape the data root
        """
        handle = str(identity or "").strip()
        if not handle or handle in (".", "..") or "/" in handle or "\\" in handle or os.sep in handle:
            raise ValidationError(f"Invalid store identity: {identity!r}")
        return self.data_root / handle / self.secrets_file

    def lock_path_for(self, identity: str) -> Path:
        """Sidecar file used for cross-process locking of an identity."""
        path = self.path_for(identity)
        return path.with_name(path.name + LOCK_SUFFIX)

    def exists(self, identity: str) -> bool:
        return self.path_for(identity).is_file()

    def load(self, identity: str) -> SecretDocument:
        """
        Load the full document of an identity.

        Returns:
            SecretDocument: Stored document, or an empty one if none exists yet

        Raises:
            SecretCorruptionError: If the file exists but is not a valid document
        """
        data = self.load_raw(identity)
        if data is None:
            return SecretDocument()
        return SecretDocument.from_dict(data)

    def load_raw(self, identity: str) -> Optional[Dict[str, Any]]:
        """
        Load the decoded JSON of an identity's document.

        Returns:
            Optional[Dict[str, Any]]: Document as stored, or None if none exists

        Raises:
            SecretCorruptionError: If the file exists but is not a valid document
        """
        path = self.path_for(identity)

        try:
            text = self.file_manager.read_text(path)
        except UnicodeDecodeError as e:
            raise SecretCorruptionError(
                f"Secrets file for {identity} is not valid UTF-8",
                path=str(path),
                details=str(e),
                suggestions=create_error_suggestions("corrupted_store", path=path),
            ) from e
        except OSError as e:
            raise SecretStoreError(f"Failed to read secrets for {identity}: {e}") from e

        if text is None:
            logger.debug(f"No secrets file for {identity}; using empty document")
            return None

        try:
            data = json.loads(text)
        except ValueError as e:
            raise SecretCorruptionError(
                f"Secrets file for {identity} is not valid JSON",
                path=str(path),
                details=str(e),
                suggestions=create_error_suggestions("corrupted_store", path=path),
            ) from e

        errors = validate_document(data)
        if errors:
            raise SecretCorruptionError(
                f"Secrets file for {identity} has an unexpected structure",
                path=str(path),
                details="; ".join(errors),
                suggestions=create_error_suggestions("corrupted_store", path=path),
            )

        return data

    def save(self, identity: str, document: SecretDocument) -> Path:
        """
        Atomically replace the stored document of an identity.

        Raises:
            SecretStoreError: If the document could not be written; the previous
                file is left in place
        """
        path = self.path_for(identity)
        try:
            self.file_manager.write_atomic(path, document.serialize())
        except OSError as e:
            raise SecretStoreError(f"Failed to save secrets for {identity}: {e}") from e

        logger.debug(f"Saved secrets for {identity} to {path}")
        return path
