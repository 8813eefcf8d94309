"""Helpers shared by managers and routes."""
