"""Utilities shared by the scripts."""
