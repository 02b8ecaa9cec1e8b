"""
Tests for the session state machine.
"""
import pytest

from models import EventLog, SessionState
from core.exceptions import GameAlreadyEnded, InvalidStateTransition, SessionNotFound
from core.state_machine import SessionStateMachine


@pytest.mark.parametrize("current,target,allowed", [
    (SessionState.LOBBY, SessionState.IN_PROGRESS, True),
    (SessionState.LOBBY, SessionState.ENDED, True),
    (SessionState.IN_PROGRESS, SessionState.ENDED, True),
    (SessionState.IN_PROGRESS, SessionState.LOBBY, False),
    (SessionState.ENDED, SessionState.LOBBY, False),
    (SessionState.ENDED, SessionState.IN_PROGRESS, False),
    (SessionState.LOBBY, SessionState.LOBBY, False),
])
def test_transition_table(current, target, allowed):
    assert SessionStateMachine.can_transition(current, target) is allowed


def test_transition_records_event(db, lobby):
    SessionStateMachine.transition(lobby.id, SessionState.IN_PROGRESS, db)
    db.commit()

    event = db.query(EventLog).filter(
        EventLog.session_id == lobby.id,
        EventLog.event_type == "SESSION_STATE_CHANGED"
    ).one()
    assert event.data == {"from": "LOBBY", "to": "IN_PROGRESS"}


def test_nothing_leaves_ended(db, lobby):
    SessionStateMachine.transition(lobby.id, SessionState.ENDED, db)
    db.commit()
    assert lobby.ended_at is not None

    for target in SessionState:
        with pytest.raises(GameAlreadyEnded):
            SessionStateMachine.transition(lobby.id, target, db)


def test_no_return_to_lobby(db, lobby):
    SessionStateMachine.transition(lobby.id, SessionState.IN_PROGRESS, db)
    with pytest.raises(InvalidStateTransition):
        SessionStateMachine.transition(lobby.id, SessionState.LOBBY, db)


def test_unknown_session(db):
    with pytest.raises(SessionNotFound):
        SessionStateMachine.transition("missing", SessionState.ENDED, db)
