"""Milestone escrow marketplace backend."""
