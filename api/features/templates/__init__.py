"""Prompt template administration: read and replace the live template."""
