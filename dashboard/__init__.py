# -*- coding: utf-8 -*-
"""Dashboard settings state."""

from dashboard.state import SettingsStore, initial_state, reduce

__all__ = ["SettingsStore", "initial_state", "reduce"]
