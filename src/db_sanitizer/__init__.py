"""Test data cleanup engine for the shop MongoDB database."""

__version__ = "1.0.0"
