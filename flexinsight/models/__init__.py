"""Pydantic schemas for remote API payloads."""
