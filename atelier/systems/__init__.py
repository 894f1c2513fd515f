"""Atelier systems: storage backends."""
