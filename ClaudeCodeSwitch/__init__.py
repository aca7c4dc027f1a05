"""
ClaudeCodeSwitch: switch between named environment presets for Claude Code.

This package provides:

- :mod:`ClaudeCodeSwitch.settings` – Access to the Claude config directory and the settings.json document.
- :mod:`ClaudeCodeSwitch.presets` – The preset store, the activation engine, and a Qt model for views.
- :mod:`ClaudeCodeSwitch.status` – Status codes and exceptions reported to the user.
- :mod:`ClaudeCodeSwitch.log` – Logging setup with an in-memory log tank.
- :mod:`ClaudeCodeSwitch.ui` – Application-wide Qt signals.

Use :class:`ClaudeCodeSwitch.presets.lib.ActivationEngine` as the entry point of a presentation layer.
"""

import sys

# Fail on Python < 3.11
if not (sys.version_info.major == 3 and sys.version_info.minor >= 11):
    raise RuntimeError('ClaudeCodeSwitch requires Python 3.11 or higher.')

__version__ = '0.1.0'
__license__ = 'GPL-3.0'
__description__ = 'ClaudeCodeSwitch: switch between named environment presets for Claude Code.'

from .log import log

log.setup_logging()
