"""Collectors and rate calculators for Linux system and service statistics."""

__version__ = "0.1.0"