"""Presentation layer - User-facing front ends."""
