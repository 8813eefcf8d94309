"""Pydantic models for stored documents, requests and responses."""
