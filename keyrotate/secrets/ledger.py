"""Secret document model and flat (single value) secret operations.

A document is persisted as one JSON object. Every top-level field except
``managed`` holds the active value of a logical key; ``managed`` maps a key to
its ordered rotation list of ``{"comment": ..., "value": ...}`` entries.
"""

import copy
import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import jsonschema

from keyrotate.utils.errors import ValidationError

from .catalog import KeyCatalog

MANAGED_FIELD = "managed"

DOCUMENT_SCHEMA = {
    "type": "object",
    "properties": {
        MANAGED_FIELD: {
            "type": "object",
            "additionalProperties": {
                "type": "array",
                "items": {
                    "type": "object",
                    "properties": {
                        "comment": {"type": "string"},
                        "value": {"type": "string"},
                    },
                    "required": ["comment", "value"],
                },
            },
        }
    },
    "additionalProperties": {"type": "string"},
}


@dataclass
class ManagedEntry:
    """One labeled candidate value in a key's rotation list."""

    comment: str
    value: str

    def to_dict(self) -> Dict[str, str]:
        return {"comment": self.comment, "value": self.value}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ManagedEntry":
        return cls(comment=data["comment"], value=data["value"])


@dataclass
class SecretDocument:
    """In-memory form of one identity's secret file."""

    flat: Dict[str, str] = field(default_factory=dict)
    managed: Dict[str, List[ManagedEntry]] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SecretDocument":
        """
        Build a document from its decoded JSON form.

        The input must already satisfy ``DOCUMENT_SCHEMA``; see
        ``validate_document``.
        """
        flat = {key: value for key, value in data.items() if key != MANAGED_FIELD}
        managed = {
            key: [ManagedEntry.from_dict(entry) for entry in entries]
            for key, entries in data.get(MANAGED_FIELD, {}).items()
        }
        return cls(flat=flat, managed=managed)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = dict(self.flat)
        data[MANAGED_FIELD] = {
            key: [entry.to_dict() for entry in entries] for key, entries in self.managed.items()
        }
        return data

    def serialize(self) -> str:
        """Serialize to the on-disk JSON text."""
        return json.dumps(self.to_dict(), indent=4, ensure_ascii=False)

    def copy(self) -> "SecretDocument":
        return copy.deepcopy(self)

    def entries(self, key: str) -> List[ManagedEntry]:
        """Rotation list for ``key``; empty when the key has none."""
        return self.managed.get(key) or []


def validate_document(data: Any) -> List[str]:
    """
    Check decoded JSON against the document structure.

    Args:
        data: Decoded JSON value

    Returns:
        List[str]: Validation errors (empty if valid)
    """
    validator = jsonschema.Draft7Validator(DOCUMENT_SCHEMA)
    errors = []
    for error in sorted(validator.iter_errors(data), key=lambda e: list(e.path)):
        location = "/".join(str(part) for part in error.path) or "<root>"
        errors.append(f"{location}: {error.message}")
    return errors


def _check_key(key: str) -> None:
    if not isinstance(key, str) or not key:
        raise ValidationError("Secret key must be a non-empty string")
    if key == MANAGED_FIELD:
        raise ValidationError(f"'{MANAGED_FIELD}' is reserved and cannot be used as a secret key")


def write_secret(document: SecretDocument, key: str, value: str) -> bool:
    """
    Set the active value of ``key``.

    Returns:
        bool: True if the document changed
    """
    _check_key(key)
    if not isinstance(value, str):
        raise ValidationError(f"Secret value for {key} must be a string")
    if document.flat.get(key) == value:
        return False
    document.flat[key] = value
    return True


def delete_secret(document: SecretDocument, key: str) -> bool:
    """Remove the active value of ``key``; a missing key is a no-op."""
    return document.flat.pop(key, None) is not None


def read_secret(document: SecretDocument, key: str) -> Optional[str]:
    """Active value of ``key`` or None."""
    return document.flat.get(key)


def secret_flags(document: SecretDocument, catalog: KeyCatalog) -> Dict[str, bool]:
    """
    Report which catalog keys have a non-empty active value.

    Args:
        document: Secret document
        catalog: Keys to report on

    Returns:
        Dict[str, bool]: Key name to "is configured"
    """
    return {key: bool(document.flat.get(key)) for key in catalog.keys if key != MANAGED_FIELD}
