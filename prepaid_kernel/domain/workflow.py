"""
Canonical workflow types (``prepaid_kernel.domain.workflow``).

Responsibility
--------------
Pure value objects for workflow state machines.  Modules declare their
lifecycle once as a ``Workflow`` and services ask it which transition an
action triggers, so the legal edges live in one place.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.

Invariants enforced
-------------------
* Transitions reference only states in ``Workflow.states``.
* ``initial_state`` is a member of ``states``.
* Terminal states have no outgoing transitions.
* A guarded transition fires only after the caller's check for that guard
  has run; a guarded transition without a check is refused.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Mapping

from prepaid_kernel.exceptions import InvalidTransitionError


@dataclass(frozen=True)
class Guard:
    """A condition that must be satisfied before a transition fires.

    The condition itself lives in the owning service, which passes a check
    keyed by ``name`` to ``Workflow.require_transition``.  A check returns
    nothing when the guard holds and raises a ``LedgerError`` otherwise.
    """

    name: str
    description: str


GuardCheck = Callable[[], None]


@dataclass(frozen=True)
class Transition:
    """A valid state transition in a workflow.

    ``mutates_ledger=True`` marks transitions that call the Contract Ledger.
    """

    from_state: str
    to_state: str
    action: str
    guard: Guard | None = None
    mutates_ledger: bool = False


@dataclass(frozen=True)
class Workflow:
    """A state machine definition for a document lifecycle."""

    name: str
    description: str
    initial_state: str
    states: tuple[str, ...]
    transitions: tuple[Transition, ...]
    terminal_states: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if self.initial_state not in self.states:
            raise ValueError(f"{self.name}: initial state {self.initial_state} not in states")
        for t in self.transitions:
            if t.from_state not in self.states or t.to_state not in self.states:
                raise ValueError(f"{self.name}: transition {t.action} references unknown state")
            if t.from_state in self.terminal_states:
                raise ValueError(f"{self.name}: terminal state {t.from_state} has outgoing transition")

    def find_transition(self, from_state: str, action: str) -> Transition | None:
        for t in self.transitions:
            if t.from_state == from_state and t.action == action:
                return t
        return None

    def actions_from(self, from_state: str) -> tuple[str, ...]:
        return tuple(t.action for t in self.transitions if t.from_state == from_state)

    def require_transition(
        self,
        from_state: str,
        action: str,
        entity_id: str,
        guards: Mapping[str, GuardCheck] | None = None,
    ) -> Transition:
        """
        Return the declared transition after evaluating its guard.

        Raises:
            InvalidTransitionError: no transition for ``action`` from ``from_state``.
            ValueError: the transition is guarded and ``guards`` has no check for it.
            LedgerError: whatever the guard check raises.
        """
        transition = self.find_transition(from_state, action)
        if transition is None:
            raise InvalidTransitionError(self.name, entity_id, from_state, action)
        if transition.guard is not None:
            check = (guards or {}).get(transition.guard.name)
            if check is None:
                raise ValueError(
                    f"{self.name}: no check supplied for guard {transition.guard.name} "
                    f"on {action}"
                )
            check()
        return transition
