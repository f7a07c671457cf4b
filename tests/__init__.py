"""Tests for libshell."""
