from __future__ import annotations

from enum import StrEnum


class SessionState(StrEnum):
    UNINITIALIZED = "UNINITIALIZED"
    LOADING = "LOADING"
    READY = "READY"
    EMPTY = "EMPTY"
    SIGNED_OUT = "SIGNED_OUT"


SESSION_ALLOWED_TRANSITIONS: dict[SessionState, set[SessionState]] = {
    SessionState.UNINITIALIZED: {SessionState.LOADING, SessionState.SIGNED_OUT},
    SessionState.LOADING: {
        SessionState.LOADING,
        SessionState.READY,
        SessionState.EMPTY,
        SessionState.SIGNED_OUT,
    },
    SessionState.READY: {SessionState.READY, SessionState.LOADING, SessionState.SIGNED_OUT},
    SessionState.EMPTY: {SessionState.READY, SessionState.LOADING, SessionState.SIGNED_OUT},
    SessionState.SIGNED_OUT: set(),
}


def can_session_transition(source: SessionState, target: SessionState) -> bool:
    return target in SESSION_ALLOWED_TRANSITIONS.get(source, set())
