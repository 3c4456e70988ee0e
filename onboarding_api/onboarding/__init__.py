"""Instructor onboarding module.

Tracks instructors through ordered steps of tasks and keeps step and
instructor progress in line with task completion.
"""

from .router import router


__all__ = ["router"]
