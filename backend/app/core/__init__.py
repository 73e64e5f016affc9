"""Core utilities for the StudyHub backend."""
