"""Atelier domain logic: root folders and the project store."""
