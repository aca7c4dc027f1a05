"""Presets subpackage: named environment blocks and their activation.

This package provides:
    - lib: the preset store, the activation engine and env JSON helpers
    - model: a Qt model presenting the engine's published snapshot
"""
