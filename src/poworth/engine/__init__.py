"""Topic lifecycle engine — state machine and deadline gating."""

from poworth.engine.state_machine import TopicStateMachine, is_authorized

__all__ = ["TopicStateMachine", "is_authorized"]
