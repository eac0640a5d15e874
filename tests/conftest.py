"""Pytest configuration and shared fixtures."""

import json
import logging
import os
import shutil
import tempfile

import pytest

from keyrotate.secrets import MutationCoordinator, SecretManager, SecretStore
from keyrotate.secrets.ledger import SecretDocument


@pytest.fixture
def temp_directory():
    """Create a temporary directory for testing."""
    temp_dir = tempfile.mkdtemp()
    yield temp_dir
    # Cleanup
    shutil.rmtree(temp_dir, ignore_errors=True)


@pytest.fixture(autouse=True)
def isolate_environment(monkeypatch):
    """Keep user configuration out of the tests."""
    monkeypatch.delenv("KEYROTATE_CONFIG", raising=False)
    monkeypatch.delenv("KEYROTATE_ALLOW_KEYS_EXPOSURE", raising=False)


@pytest.fixture
def store(temp_directory):
    """Secret store rooted in a temporary directory."""
    return SecretStore(temp_directory)


@pytest.fixture
def coordinator(store):
    """Mutation coordinator with a short lock timeout."""
    return MutationCoordinator(store, lock_timeout=2.0)


@pytest.fixture
def secret_manager(store, coordinator):
    """Secret manager with keys exposure disabled."""
    return SecretManager(store, coordinator=coordinator)


@pytest.fixture
def sample_document_data():
    """Document with one flat key and one managed key."""
    return {
        "api_key_claude": "sk-claude",
        "api_key_openai": "b",
        "managed": {
            "api_key_openai": [
                {"comment": "first", "value": "a"},
                {"comment": "second", "value": "b"},
                {"comment": "third", "value": "c"},
            ]
        },
    }


@pytest.fixture
def sample_document(sample_document_data):
    """Sample document as a SecretDocument."""
    return SecretDocument.from_dict(sample_document_data)


@pytest.fixture
def write_document(temp_directory):
    """Write raw text as the secrets file of an identity."""

    def _write(identity, content):
        directory = os.path.join(temp_directory, identity)
        os.makedirs(directory, exist_ok=True)
        path = os.path.join(directory, "secrets.json")
        if not isinstance(content, str):
            content = json.dumps(content, indent=4)
        with open(path, "w", encoding="utf-8") as f:
            f.write(content)
        return path

    return _write


@pytest.fixture(autouse=True)
def reset_logging():
    """Drop handlers installed by CLI invocations so they do not outlive the test."""
    yield
    root_logger = logging.getLogger()
    for handler in list(root_logger.handlers):
        if getattr(handler, "_keyrotate", False):
            root_logger.removeHandler(handler)
            handler.close()
