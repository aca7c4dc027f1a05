"""Application-wide Qt signals for ClaudeCodeSwitch.

This module provides:
    - Signals: custom Qt signals for preset changes, activation, errors and log display.
"""
import logging

from PySide6 import QtCore


class Signals(QtCore.QObject):
    """Centralized Qt signals for preset, settings and logging events."""
    presetsChanged = QtCore.Signal()
    presetAboutToBeActivated = QtCore.Signal(str)  # Preset name
    presetActivated = QtCore.Signal(str)  # Preset name

    settingsWritten = QtCore.Signal(str)  # Path of the written settings.json

    showLogs = QtCore.Signal()

    error = QtCore.Signal(str)

    def __init__(self):
        super().__init__()
        self._connect_signals()

    def _connect_signals(self):
        self.presetActivated.connect(lambda name: logging.info(f'Preset activated: {name}'))
        self.settingsWritten.connect(lambda path: logging.debug(f'Settings written: {path}'))


signals = Signals()
