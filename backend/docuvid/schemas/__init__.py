"""Pydantic schemas for API bodies and imported shot list documents."""
