"""Prompt builders for AI-assisted authoring."""
