"""Status definitions and exceptions for ClaudeCodeSwitch.

This module provides:
    - Status: enumeration of possible application states
    - STATUS_MESSAGE: user-facing messages for each status
    - get_message: retrieve the message for a status
    - BaseStatusException: base exception carrying a Status
    - Specific exceptions (e.g., SettingsWriteFailureException) raised by the settings and preset layers
"""
import enum
import logging
from typing import Dict


class Status(enum.StrEnum):
    """Enumeration of application status codes."""
    UnknownStatus = enum.auto()
    Okay = enum.auto()

    # settings.json status
    SettingsNotReadable = enum.auto()
    SettingsParseFailure = enum.auto()
    SettingsWriteFailure = enum.auto()

    # env_presets.json status
    PresetsWriteFailure = enum.auto()

    # Preset operations
    PresetNotFound = enum.auto()
    PresetInvalid = enum.auto()
    EnvParseFailure = enum.auto()


STATUS_MESSAGE: Dict[Status, str] = {
    Status.UnknownStatus: 'Unknown status.',
    Status.Okay: 'Everything is okay.',

    Status.SettingsNotReadable: 'Cannot read settings.json.',
    Status.SettingsParseFailure: 'Failed to parse settings.json.',
    Status.SettingsWriteFailure: 'Failed to write settings.json.',

    Status.PresetsWriteFailure: 'Failed to save the presets.',

    Status.PresetNotFound: 'Could not find the preset.',
    Status.PresetInvalid: 'The preset is incomplete, or contains invalid values.',
    Status.EnvParseFailure: 'JSON parse error.',
}


def get_message(status: Status) -> str:
    """
    Get the message for a given status.

    Args:
        status (Status): The status enum.

    Returns:
        str: The message associated with the status.
    """
    return STATUS_MESSAGE.get(status, 'Unknown status')


class BaseStatusException(Exception):
    """Base exception for status-based errors in ClaudeCodeSwitch.

    Attributes:
        status (Status): Status code associated with this error.
        status_message (str): User-facing message for the status.

    Args:
        message (str): Optional additional context for the error.
    """
    status = Status.UnknownStatus

    def __init__(self, message: str = None):
        self.status_message = get_message(self.status)
        exception_message = f'{self.status_message} {message}' if message else self.status_message
        super().__init__(exception_message)

        logging.error(exception_message)

        from ..ui.actions import signals
        signals.error.emit(exception_message)


class UnknownException(BaseStatusException):
    """Exception for an unknown error during status processing."""
    pass


class SettingsNotReadableException(BaseStatusException):
    """Exception raised when settings.json is missing or cannot be read."""
    status = Status.SettingsNotReadable


class SettingsParseFailureException(BaseStatusException):
    """Exception raised when settings.json is not valid JSON or has fields of the wrong shape."""
    status = Status.SettingsParseFailure


class SettingsWriteFailureException(BaseStatusException):
    """Exception raised when settings.json cannot be serialized or written."""
    status = Status.SettingsWriteFailure


class PresetsWriteFailureException(BaseStatusException):
    """Exception raised when env_presets.json cannot be serialized or written."""
    status = Status.PresetsWriteFailure


class PresetNotFoundException(BaseStatusException):
    """Exception raised when no preset matches the requested id."""
    status = Status.PresetNotFound


class PresetInvalidException(BaseStatusException):
    """Exception raised when a preset has an empty name, a duplicate id or a malformed env."""
    status = Status.PresetInvalid


class EnvParseException(BaseStatusException):
    """Exception raised when an env JSON text is not an object of string values."""
    status = Status.EnvParseFailure
