"""Tests for chaz."""
