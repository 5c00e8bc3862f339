"""Orchestration substrate for a fleet of GitHub issue coding agents."""

__version__ = "0.1.0"
