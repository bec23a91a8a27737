"""Tests for :mod:`session_stores.stores`."""
