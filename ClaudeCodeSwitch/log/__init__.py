"""
Logging subsystem: handlers and setup helpers for application logging.

Modules:

- :mod:`ClaudeCodeSwitch.log.log` – Log handler integrating with Python logging and Qt's message log.
"""
