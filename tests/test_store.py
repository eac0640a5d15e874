"""Tests for persistent secret storage."""

import json
import os
from unittest.mock import patch

import pytest

from keyrotate.secrets.ledger import ManagedEntry, SecretDocument
from keyrotate.secrets.store import SecretStore
from keyrotate.utils.errors import SecretCorruptionError, SecretStoreError, ValidationError


class TestSecretStore:
    """Test loading and saving documents."""

    def test_path_for_identity(self, store, temp_directory):
        """Test that each identity has its own directory."""
        assert str(store.path_for("alice")) == os.path.join(temp_directory, "alice", "secrets.json")
        assert str(store.lock_path_for("alice")) == os.path.join(temp_directory, "alice", "secrets.json.lock")

    def test_custom_secrets_file(self, temp_directory):
        """Test a non-default document file name."""
        store = SecretStore(temp_directory, secrets_file="keys.json")

        assert store.path_for("alice").name == "keys.json"

    @pytest.mark.parametrize("identity", ["", "  ", ".", "..", "a/b", "..\\x", None])
    def test_invalid_identity(self, store, identity):
        """Test that identities cannot escape the data root."""
        with pytest.raises(ValidationError):
            store.path_for(identity)

    def test_load_absent_document(self, store):
        """Test that a missing file loads as an empty document."""
        document = store.load("alice")

        assert document == SecretDocument()
        assert store.load_raw("alice") is None
        assert not store.exists("alice")

    def test_save_and_load(self, store, sample_document):
        """Test that a saved document loads back equal."""
        store.save("alice", sample_document)

        assert store.exists("alice")
        assert store.load("alice") == sample_document

    def test_saved_file_format(self, store, temp_directory):
        """Test the on-disk JSON layout."""
        document = SecretDocument(flat={"api_key_openai": "a"})
        document.managed["api_key_openai"] = [ManagedEntry("first", "a")]
        store.save("alice", document)

        with open(os.path.join(temp_directory, "alice", "secrets.json"), encoding="utf-8") as f:
            data = json.load(f)

        assert data == {
            "api_key_openai": "a",
            "managed": {"api_key_openai": [{"comment": "first", "value": "a"}]},
        }

    def test_saved_file_permissions(self, store):
        """Test that secrets files are readable by the owner only."""
        path = store.save("alice", SecretDocument(flat={"api_key_openai": "a"}))

        assert os.stat(path).st_mode & 0o777 == 0o600

    def test_save_leaves_no_temporary_files(self, store, temp_directory):
        """Test that atomic saves clean up after themselves."""
        store.save("alice", SecretDocument(flat={"api_key_openai": "a"}))
        store.save("alice", SecretDocument(flat={"api_key_openai": "b"}))

        assert os.listdir(os.path.join(temp_directory, "alice")) == ["secrets.json"]

    def test_identities_are_separate(self, store):
        """Test that identities do not share documents."""
        store.save("alice", SecretDocument(flat={"api_key_openai": "a"}))

        assert store.load("bob") == SecretDocument()

    def test_invalid_json_is_corruption(self, store, write_document):
        """Test that unparsable files are reported, not replaced."""
        path = write_document("alice", '{"api_key_openai": "a"')

        with pytest.raises(SecretCorruptionError) as exc_info:
            store.load("alice")

        assert exc_info.value.path == path
        assert exc_info.value.suggestions
        with open(path, encoding="utf-8") as f:
            assert f.read() == '{"api_key_openai": "a"'

    def test_unexpected_structure_is_corruption(self, store, write_document):
        """Test that structurally invalid documents are reported."""
        write_document("alice", {"managed": {"api_key_openai": "not-a-list"}})

        with pytest.raises(SecretCorruptionError) as exc_info:
            store.load("alice")

        assert "managed/api_key_openai" in exc_info.value.details

    def test_undecodable_bytes_are_corruption(self, store, temp_directory):
        """Test that a file that is not UTF-8 is reported as corrupted."""
        os.makedirs(os.path.join(temp_directory, "alice"))
        path = os.path.join(temp_directory, "alice", "secrets.json")
        with open(path, "wb") as f:
            f.write(b'{"api_key_openai": "\xff\xfe"}')

        with pytest.raises(SecretCorruptionError) as exc_info:
            store.load("alice")

        assert exc_info.value.path == path
        assert "UTF-8" in exc_info.value.message
        with open(path, "rb") as f:
            assert f.read() == b'{"api_key_openai": "\xff\xfe"}'

    def test_non_object_is_corruption(self, store, write_document):
        """Test that a JSON array is not a document."""
        write_document("alice", "[]")

        with pytest.raises(SecretCorruptionError):
            store.load_raw("alice")

    def test_load_raw_returns_stored_data(self, store, write_document, sample_document_data):
        """Test that raw loads return the decoded file."""
        write_document("alice", sample_document_data)

        assert store.load_raw("alice") == sample_document_data

    def test_read_error(self, store):
        """Test that I/O errors are wrapped."""
        with patch.object(store.file_manager, "read_text", side_effect=PermissionError("denied")):
            with pytest.raises(SecretStoreError):
                store.load("alice")

    def test_failed_save_keeps_previous_document(self, store):
        """Test that a failed write leaves the old file in place."""
        store.save("alice", SecretDocument(flat={"api_key_openai": "old"}))

        with patch("os.replace", side_effect=OSError("disk full")):
            with pytest.raises(SecretStoreError):
                store.save("alice", SecretDocument(flat={"api_key_openai": "new"}))

        assert store.load("alice").flat == {"api_key_openai": "old"}
        assert os.listdir(store.path_for("alice").parent) == ["secrets.json"]
