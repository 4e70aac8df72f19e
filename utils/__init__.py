"""Coordinate and geometry helpers."""
