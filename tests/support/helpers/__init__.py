"""Test doubles shared across unit tests."""
