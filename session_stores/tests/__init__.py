"""Tests for :mod:`session_stores`."""
