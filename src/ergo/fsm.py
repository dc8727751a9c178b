"""
Minimal finite state machine.

The machine only validates and applies transitions. It performs no I/O and
fires no callbacks: callers get a Transition back and decide what to report.
"""

from __future__ import annotations

from collections.abc import Hashable, Mapping
from dataclasses import dataclass
from types import MappingProxyType
from typing import Generic, TypeVar

from .errors import InvalidTransitionError

S = TypeVar("S", bound=Hashable)
E = TypeVar("E", bound=Hashable)


@dataclass(frozen=True)
class Transition(Generic[S, E]):
    """A single applied edge."""

    source: S
    event: E
    destination: S


class StateMachine(Generic[S, E]):
    """
    Finite state machine over a fixed transition table.

    Args:
        initial: Starting state
        transitions: Mapping of (state, event) to destination state.
            Copied into a read-only view, so later changes to the
            caller's mapping do not leak into the machine.
    """

    def __init__(self, initial: S, transitions: Mapping[tuple[S, E], S]):
        self._transitions: Mapping[tuple[S, E], S] = MappingProxyType(dict(transitions))
        self._state = initial

    @property
    def current_state(self) -> S:
        return self._state

    @property
    def transitions(self) -> Mapping[tuple[S, E], S]:
        return self._transitions

    def can_transition(self, event: E) -> bool:
        """True iff the current state has an edge for event."""
        return (self._state, event) in self._transitions

    def available_events(self) -> list[E]:
        """Events with an edge from the current state."""
        return [event for (state, event) in self._transitions if state == self._state]

    def transition(self, event: E) -> Transition[S, E]:
        """
        Apply event to the current state.

        Returns:
            The Transition that was applied

        Raises:
            InvalidTransitionError: No edge for event; state is left unchanged
        """
        destination = self._transitions.get((self._state, event))
        if destination is None:
            raise InvalidTransitionError(self._state, event)

        applied = Transition(source=self._state, event=event, destination=destination)
        self._state = destination
        return applied

    def __repr__(self) -> str:
        return f"StateMachine(current_state={self._state!r})"
