"""Unit tests for flare-vault."""
