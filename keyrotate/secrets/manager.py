"""Secret store operations for callers (CLI or embedding applications)."""

import logging
from typing import Any, Dict, List, Optional, Union

from keyrotate.utils.errors import (
    SecretAccessDeniedError,
    SecretNotFoundError,
    create_error_suggestions,
)

from . import ledger, rotation
from .catalog import DEFAULT_CATALOG, KeyCatalog
from .coordinator import DEFAULT_LOCK_TIMEOUT, MutationCoordinator
from .ledger import SecretDocument
from .rotation import ProbeResult
from .store import DEFAULT_SECRETS_FILE, SecretStore

logger = logging.getLogger(__name__)


class SecretManager:
    """Per-identity secret operations with managed rotation.

    Mutating operations run through the mutation coordinator and return True
    when they acted, False when there was nothing to act on. Rejections
    (conflict, access denied, corruption) are raised, never returned.
    """

    def __init__(
        self,
        store: SecretStore,
        coordinator: Optional[MutationCoordinator] = None,
        catalog: KeyCatalog = DEFAULT_CATALOG,
        allow_keys_exposure: bool = False,
    ):
        """
        Initialize secret manager.

        Args:
            store: Persistent store of secret documents
            coordinator: Mutation coordinator (one is created if omitted)
            catalog: Known keys and exportable keys
            allow_keys_exposure: Permit reading raw secret values
        """
        self.store = store
        self.coordinator = coordinator or MutationCoordinator(store)
        self.catalog = catalog
        self.allow_keys_exposure = allow_keys_exposure

    @classmethod
    def from_settings(cls, settings: Any, catalog: KeyCatalog = DEFAULT_CATALOG) -> "SecretManager":
        """Build a manager from loaded configuration settings."""
        store = SecretStore(
            settings.data_root,
            secrets_file=getattr(settings, "secrets_file", DEFAULT_SECRETS_FILE),
        )
        coordinator = MutationCoordinator(
            store,
            lock_timeout=getattr(settings, "lock_timeout", DEFAULT_LOCK_TIMEOUT),
        )
        return cls(
            store,
            coordinator=coordinator,
            catalog=catalog,
            allow_keys_exposure=getattr(settings, "allow_keys_exposure", False),
        )

    # Flat secrets

    def write_secret(self, identity: str, key: str, value: str, track: bool = False) -> bool:
        """
        Set the active value of a key.

        Args:
            identity: Store identity
            key: Logical key
            value: New active value
            track: Also add the value to the key's rotation list if it has one

        Returns:
            bool: True if the document changed
        """

        def operation(document: SecretDocument) -> bool:
            changed = ledger.write_secret(document, key, value)
            if track and rotation.track_active(document, key, rotation.default_comment()):
                logger.info(f"Added new value of {key} to its rotation list ({identity})")
                changed = True
            return changed

        changed = self.coordinator.mutate(identity, operation)
        logger.info(f"Wrote secret {key} for {identity}")
        return changed

    def delete_secret(self, identity: str, key: str) -> bool:
        """Remove the active value of a key; returns False if it was not set."""
        deleted = self.coordinator.mutate(identity, lambda document: ledger.delete_secret(document, key))
        if deleted:
            logger.info(f"Deleted secret {key} for {identity}")
        return deleted

    def read_secret_flags(self, identity: str) -> Dict[str, bool]:
        """Which catalog keys have a non-empty active value."""
        return ledger.secret_flags(self.store.load(identity), self.catalog)

    def find_secret(self, identity: str, key: str) -> str:
        """
        Read the raw active value of a key.

        Allowed when keys exposure is enabled or the key is exportable.

        Raises:
            SecretAccessDeniedError: If raw values may not be read
            SecretNotFoundError: If the key has no value
        """
        if not self.allow_keys_exposure and not self.catalog.is_exportable(key):
            logger.error("Cannot fetch secrets unless allow_keys_exposure is enabled")
            raise SecretAccessDeniedError(
                f"Reading the value of {key} is not allowed",
                suggestions=create_error_suggestions("keys_exposure_disabled"),
            )

        value = ledger.read_secret(self.store.load(identity), key)
        if not value:
            raise SecretNotFoundError(f"Secret {key} is not set")
        return value

    def view_all_secrets(self, identity: str) -> Dict[str, Any]:
        """
        Export the complete raw document, including secret values.

        Raises:
            SecretAccessDeniedError: If keys exposure is disabled
            SecretNotFoundError: If the identity has no document yet
        """
        if not self.allow_keys_exposure:
            logger.error("Secrets cannot be viewed unless allow_keys_exposure is enabled")
            raise SecretAccessDeniedError(
                "Viewing all secrets is not allowed",
                suggestions=create_error_suggestions("keys_exposure_disabled"),
            )

        data = self.store.load_raw(identity)
        if data is None:
            raise SecretNotFoundError(f"No secrets stored for {identity}")
        return data

    # Managed rotation

    def manager_state(self, identity: str) -> Dict[str, List[Dict[str, Any]]]:
        """Redacted rotation lists: comment and selected flag per entry."""
        return rotation.manager_view(self.store.load(identity))

    def probe(self, identity: str, key: str) -> ProbeResult:
        return rotation.probe(self.store.load(identity), key)

    def current(self, identity: str, key: str, comment: bool = False) -> Optional[Union[int, str]]:
        return rotation.current_entry(self.store.load(identity), key, comment=comment)

    def list_entries(self, identity: str, key: str) -> Dict[int, str]:
        return rotation.list_comments(self.store.load(identity), key)

    def rotate(self, identity: str, key: str, search: Any = None) -> bool:
        """
        Make another rotation list value active.

        Args:
            identity: Store identity
            key: Logical key
            search: Index, comment, or None for the next entry

        Returns:
            bool: True if an entry was selected
        """
        selected = self.coordinator.mutate(identity, lambda document: rotation.rotate(document, key, search))
        if selected is None:
            logger.info(f"Nothing to rotate for {key} ({identity})")
            return False
        logger.info(f"Rotated {key} to {selected.comment!r} ({identity})")
        return True

    def append(self, identity: str, key: str, value: str, comment: Optional[str] = None) -> bool:
        """Add a value to the end of a key's rotation list."""
        label = comment if comment else rotation.default_comment()
        self.coordinator.mutate(identity, lambda document: rotation.append_entry(document, key, label, value))
        logger.info(f"Appended {label!r} to {key} ({identity})")
        return True

    def splice(self, identity: str, key: str, index: int) -> bool:
        """Remove the entry at an index; out-of-range indices are ignored."""
        removed = self.coordinator.mutate(identity, lambda document: rotation.splice_entry(document, key, index))
        if removed is None:
            logger.info(f"No entry {index} to remove from {key} ({identity})")
            return False
        logger.info(f"Removed entry {index} from {key} ({identity})")
        return True

    def remove(self, identity: str, key: str, index: int) -> bool:
        """Remove an entry and rotate away from it if it was active."""
        removed = self.coordinator.mutate(identity, lambda document: rotation.remove_entry(document, key, index))
        if removed:
            logger.info(f"Removed entry {index} from {key} ({identity})")
        return removed

    def clear(self, identity: str, key: str) -> bool:
        """Blank the active value and empty the rotation list of a key."""
        cleared = self.coordinator.mutate(identity, lambda document: rotation.clear_entries(document, key))
        if cleared:
            logger.info(f"Cleared {key} ({identity})")
        return cleared

    def migrate(self, identity: str, key: str, comment: Optional[str] = None) -> bool:
        """
        Move the active value of a key into its rotation list.

        Returns:
            bool: True if migrated, False if the key has no active value

        Raises:
            SecretConflictError: If the active value is already managed
        """
        label = comment if comment else rotation.default_comment()
        entry = self.coordinator.mutate(identity, lambda document: rotation.migrate(document, key, label))
        if entry is None:
            logger.info(f"No active value of {key} to migrate ({identity})")
            return False
        logger.info(f"Migrated {key} into its rotation list as {label!r} ({identity})")
        return True
