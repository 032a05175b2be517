"""Dependency-aware orchestration of AI-agent CLI workflows."""

__version__ = "0.1.0"
