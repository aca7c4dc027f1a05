"""
Settings package: access to the Claude Code configuration directory.

This package provides:

- :mod:`ClaudeCodeSwitch.settings.lib` – Config paths, the settings.json document model, and its reader/writer.
"""
