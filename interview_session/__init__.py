"""Interview session orchestration."""
from .state_machine import (
    InboundEvent,
    PauseSession,
    RemoteScoreReady,
    ResumeSession,
    SessionPhase,
    SessionSnapshot,
    SessionStateMachine,
    StartSession,
    SwitchCandidate,
    TimerExpired,
    UserTurn,
)

__all__ = [
    "InboundEvent",
    "PauseSession",
    "RemoteScoreReady",
    "ResumeSession",
    "SessionPhase",
    "SessionSnapshot",
    "SessionStateMachine",
    "StartSession",
    "SwitchCandidate",
    "TimerExpired",
    "UserTurn",
]
