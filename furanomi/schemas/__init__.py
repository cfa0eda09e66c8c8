"""Pydantic wire-format models."""
