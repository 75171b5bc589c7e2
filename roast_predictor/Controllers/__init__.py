"""
Controllers Module

This module contains high-level control logic that coordinates the
pipeline drivers into one user-facing flow.

Controllers:
    - SessionController: Capture -> preprocess -> inference state machine
"""

from .session_controller import (
    CaptureStatus,
    ErrorInfo,
    SessionController,
    SessionPhase,
    SessionState,
    Ticket,
)

__all__ = [
    'SessionController', 'SessionState', 'SessionPhase',
    'CaptureStatus', 'ErrorInfo', 'Ticket',
]
