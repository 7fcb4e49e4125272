"""
Background Jobs for the Consent Engine.

- deadline_sweep: closes polls whose deadline passed
- role_assignment_dispatch: delivers elected members to the directory
"""

from .deadline_sweep import run_deadline_sweep
from .role_assignment_dispatch import run_role_assignment_dispatch

__all__ = ["run_deadline_sweep", "run_role_assignment_dispatch"]
