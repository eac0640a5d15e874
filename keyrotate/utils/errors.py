"""Error handling utilities for keyrotate."""

import sys
import traceback
from typing import Optional

import click


class KeyRotateError(Exception):
    """Base exception for keyrotate errors."""

    def __init__(
        self,
        message: str,
        details: Optional[str] = None,
        suggestions: Optional[list] = None,
    ):
        self.message = message
        self.details = details
        self.suggestions = suggestions or []
        super().__init__(message)


class ConfigurationError(KeyRotateError):
    """Raised when configuration is invalid or missing."""

    pass


class ValidationError(KeyRotateError):
    """Raised when caller input fails validation."""

    pass


class UnknownSecretKeyError(ValidationError):
    """Raised when a logical key is not in the key catalog or cannot be inferred."""

    pass


class SecretStoreError(KeyRotateError):
    """Raised when the secret store cannot complete an operation."""

    pass


class SecretNotFoundError(SecretStoreError):
    """Raised when a requested document or value does not exist."""

    pass


class SecretCorruptionError(SecretStoreError):
    """Raised when a stored document exists but cannot be parsed."""

    def __init__(self, message: str, path: Optional[str] = None, **kwargs):
        self.path = path
        super().__init__(message, **kwargs)


class SecretConflictError(SecretStoreError):
    """Raised when a migration targets a value that is already managed."""

    def __init__(self, message: str, key: Optional[str] = None, index: int = -1, **kwargs):
        self.key = key
        self.index = index
        super().__init__(message, **kwargs)


class SecretAccessDeniedError(SecretStoreError):
    """Raised when raw secret values are requested without permission."""

    pass


class StoreLockError(SecretStoreError):
    """Raised when exclusive access to a store could not be acquired in time."""

    pass


class ErrorHandler:
    """Handles and formats errors for user-friendly display."""

    def __init__(self, verbose: bool = False):
        self.verbose = verbose

    def handle_error(self, error: Exception, context: Optional[str] = None) -> None:
        """
        Handle and display error with appropriate formatting.

        Args:
            error: Exception to handle
            context: Optional context about when/where error occurred
        """
        if isinstance(error, KeyRotateError):
            self._handle_keyrotate_error(error, context)
        else:
            self._handle_generic_error(error, context)

    def _handle_keyrotate_error(self, error: KeyRotateError, context: Optional[str]) -> None:
        """Handle keyrotate-specific errors."""
        # Main error message
        click.echo(f"✗ {error.message}", err=True)

        # Add context if provided
        if context:
            click.echo(f"Context: {context}", err=True)

        # Point at the damaged file
        if isinstance(error, SecretCorruptionError) and error.path:
            click.echo(f"File: {error.path}", err=True)

        # Add details if available
        if error.details:
            click.echo(f"Details: {error.details}", err=True)

        # Add suggestions if available
        if error.suggestions:
            click.echo("\nSuggestions:", err=True)
            for suggestion in error.suggestions:
                click.echo(f"  • {suggestion}", err=True)

        # Add verbose traceback if requested
        if self.verbose:
            click.echo("\nFull traceback:", err=True)
            traceback.print_exc()

    def _handle_generic_error(self, error: Exception, context: Optional[str]) -> None:
        """Handle generic Python exceptions."""
        error_type = type(error).__name__

        # Format error message based on type
        if isinstance(error, FileNotFoundError):
            message = f"File not found: {error}"
            suggestions = [
                "Check that the file path is correct",
                "Ensure the file exists and is readable",
            ]
        elif isinstance(error, PermissionError):
            message = f"Permission denied: {error}"
            suggestions = [
                "Check file/directory permissions of the data root",
                "Ensure the store directory is owned by the current user",
            ]
        else:
            message = f"{error_type}: {error}"
            suggestions = []

        # Display error
        click.echo(f"✗ {message}", err=True)

        if context:
            click.echo(f"Context: {context}", err=True)

        if suggestions:
            click.echo("\nSuggestions:", err=True)
            for suggestion in suggestions:
                click.echo(f"  • {suggestion}", err=True)

        if self.verbose:
            click.echo("\nFull traceback:", err=True)
            traceback.print_exc()

    def exit_with_error(self, error: Exception, context: Optional[str] = None, exit_code: int = 1) -> None:
        """Handle error and exit with specified code."""
        self.handle_error(error, context)
        sys.exit(exit_code)


def create_error_suggestions(error_type: str, **kwargs) -> list:
    """
    Create contextual error suggestions based on error type and context.

    Args:
        error_type: Type of error
        **kwargs: Additional context information (path, key, timeout)

    Returns:
        list: List of suggestion strings
    """
    path = kwargs.get("path", "the secrets file")
    key = kwargs.get("key", "the key")

    suggestions = {
        "corrupted_store": [
            f"Inspect {path} for truncated or hand-edited JSON",
            "Restore the file from a backup or move it aside to start empty",
        ],
        "keys_exposure_disabled": [
            "Set 'allow_keys_exposure: true' in keyrotate.yml",
            "Or export KEYROTATE_ALLOW_KEYS_EXPOSURE=true for this invocation",
        ],
        "already_managed": [
            f"Run 'keyrotate manager list --key {key}' to see the rotation list",
            "Use 'keyrotate manager append' to add a different value",
        ],
        "lock_timeout": [
            "Another keyrotate process is holding the store lock",
            "Raise 'lock_timeout' in keyrotate.yml if operations are slow",
        ],
        "unknown_key": [
            "Run 'keyrotate flags' to list known secret keys",
            "Check the spelling of the key name",
        ],
        "configuration_invalid": [
            "Check YAML syntax in configuration file",
            "Run 'keyrotate config validate' for a detailed report",
        ],
    }

    return suggestions.get(error_type, [])


def format_validation_errors(errors: list) -> str:
    """
    Format validation errors for display.

    Args:
        errors: List of validation error messages

    Returns:
        str: Formatted error message
    """
    if not errors:
        return "No validation errors"

    if len(errors) == 1:
        return f"Validation error: {errors[0]}"

    formatted = "Validation errors:\n"
    for i, error in enumerate(errors, 1):
        formatted += f"  {i}. {error}\n"

    return formatted.strip()
