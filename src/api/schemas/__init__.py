"""Pydantic models for API payloads."""
