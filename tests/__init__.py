"""Tests for the photo batch corrector package."""
