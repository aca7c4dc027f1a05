"""UI package: application-wide signals shared by the core and any presentation layer.

Modules:

- :mod:`ClaudeCodeSwitch.ui.actions` – Centralized Qt signals.
"""
