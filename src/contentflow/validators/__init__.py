"""Pydantic models for workflow entities, inputs and results."""
