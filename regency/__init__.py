"""Regency - issue resolution engine for a turn-based political role-playing game."""

__version__ = "0.1.0"
