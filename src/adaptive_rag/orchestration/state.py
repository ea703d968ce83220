"""Lane state machine: states and legal transitions."""

from __future__ import annotations

from enum import Enum


class LaneState(str, Enum):
    INIT = "init"
    PLAN = "plan"
    RETRIEVE = "retrieve"
    GRADE = "grade"
    REWRITE = "rewrite"
    GENERATE = "generate"
    VERIFY = "verify"
    DONE = "done"
    ERROR = "error"
    TIMEOUT = "timeout"


TERMINAL_STATES = frozenset({LaneState.DONE, LaneState.ERROR, LaneState.TIMEOUT})

TRANSITIONS: dict[LaneState, frozenset[LaneState]] = {
    LaneState.INIT: frozenset({LaneState.PLAN, LaneState.RETRIEVE, LaneState.GENERATE}),
    LaneState.PLAN: frozenset({LaneState.RETRIEVE}),
    LaneState.RETRIEVE: frozenset({LaneState.GRADE}),
    LaneState.GRADE: frozenset({LaneState.REWRITE, LaneState.GENERATE}),
    LaneState.REWRITE: frozenset({LaneState.RETRIEVE}),
    LaneState.GENERATE: frozenset({LaneState.VERIFY}),
    LaneState.VERIFY: frozenset({LaneState.DONE}),
}


class InvalidTransition(RuntimeError):
    pass


class LaneStateMachine:
    def __init__(self) -> None:
        self.state = LaneState.INIT
        self.history: list[LaneState] = [LaneState.INIT]

    def advance(self, target: LaneState) -> LaneState:
        if self.state in TERMINAL_STATES:
            raise InvalidTransition(f"{self.state.value} is terminal")
        # ERROR and TIMEOUT are reachable from every non-terminal state
        if target not in (LaneState.ERROR, LaneState.TIMEOUT) and target not in TRANSITIONS[self.state]:
            raise InvalidTransition(f"{self.state.value} -> {target.value}")
        self.state = target
        self.history.append(target)
        return target

    @property
    def finished(self) -> bool:
        return self.state in TERMINAL_STATES
