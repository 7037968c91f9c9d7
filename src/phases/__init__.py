from .machine import PhaseGates, PhaseStateMachine, TransitionResult

__all__ = ["PhaseGates", "PhaseStateMachine", "TransitionResult"]
