"""Cycle orchestration and scheduling for the ladder trader."""
