"""Tests for file operations."""

import os
import tempfile
from unittest.mock import patch

import pytest

from keyrotate.utils.files import FileManager


class TestFileManager:
    """Test file manager functionality."""

    def setup_method(self):
        """Setup test environment."""
        self.file_manager = FileManager()
        self.temp_dir = tempfile.mkdtemp()

    def teardown_method(self):
        """Clean up test environment."""
        import shutil

        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def test_write_atomic_creates_file(self):
        """Test writing a new file."""
        output_path = os.path.join(self.temp_dir, "secrets.json")

        result_path = self.file_manager.write_atomic(output_path, '{"managed": {}}')

        assert str(result_path) == output_path
        with open(output_path, "r", encoding="utf-8") as f:
            assert f.read() == '{"managed": {}}'

    def test_write_atomic_replaces_file(self):
        """Test replacing an existing file."""
        output_path = os.path.join(self.temp_dir, "secrets.json")
        self.file_manager.write_atomic(output_path, "old")

        self.file_manager.write_atomic(output_path, "new")

        with open(output_path, "r", encoding="utf-8") as f:
            assert f.read() == "new"

    def test_write_atomic_permissions(self):
        """Test that written files have correct permissions."""
        output_path = os.path.join(self.temp_dir, "secrets.json")

        self.file_manager.write_atomic(output_path, "{}")

        # Check file permissions (should be 600 - user read/write only)
        permissions = os.stat(output_path).st_mode & 0o777
        assert permissions == 0o600

    def test_write_atomic_custom_mode(self):
        """Test a custom file mode."""
        output_path = os.path.join(self.temp_dir, "public.json")

        FileManager(file_mode=0o644).write_atomic(output_path, "{}")

        assert os.stat(output_path).st_mode & 0o777 == 0o644

    def test_write_atomic_creates_parent_directories(self):
        """Test that missing directories are created owner-only."""
        output_path = os.path.join(self.temp_dir, "alice", "secrets.json")

        self.file_manager.write_atomic(output_path, "{}")

        assert os.path.exists(output_path)
        assert os.stat(os.path.dirname(output_path)).st_mode & 0o777 == 0o700

    def test_write_atomic_unicode(self):
        """Test that non-ASCII content is written as UTF-8."""
        output_path = os.path.join(self.temp_dir, "secrets.json")

        self.file_manager.write_atomic(output_path, '{"comment": "clé ☕"}')

        with open(output_path, "rb") as f:
            assert f.read().decode("utf-8") == '{"comment": "clé ☕"}'

    def test_write_atomic_failure_keeps_old_file(self):
        """Test that a failed replace leaves the old file and no temporary file."""
        output_path = os.path.join(self.temp_dir, "secrets.json")
        self.file_manager.write_atomic(output_path, "old")

        with patch("os.replace", side_effect=OSError("disk full")):
            with pytest.raises(OSError):
                self.file_manager.write_atomic(output_path, "new")

        with open(output_path, "r", encoding="utf-8") as f:
            assert f.read() == "old"
        assert os.listdir(self.temp_dir) == ["secrets.json"]

    def test_read_text_missing_file(self):
        """Test that missing files read as None."""
        assert self.file_manager.read_text(os.path.join(self.temp_dir, "missing.json")) is None

    def test_read_text(self):
        """Test reading a file."""
        output_path = os.path.join(self.temp_dir, "secrets.json")
        self.file_manager.write_atomic(output_path, "content")

        assert self.file_manager.read_text(output_path) == "content"

    def test_ensure_directory_existing(self):
        """Test that existing directories are left alone."""
        os.chmod(self.temp_dir, 0o755)

        self.file_manager.ensure_directory(self.temp_dir)

        assert os.stat(self.temp_dir).st_mode & 0o777 == 0o755
