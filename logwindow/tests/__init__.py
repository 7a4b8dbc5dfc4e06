"""Test suite for the windowed log-count cache."""
