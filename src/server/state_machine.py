"""Server lifecycle state machine using the ``transitions`` library.

Defines 5 states and 4 transitions. ``failed`` is terminal and reachable from
every non-terminal state; ``stopped`` is only reached through an orderly
shutdown.
"""

from __future__ import annotations

import logging
from typing import Any

from transitions.extensions.asyncio import AsyncMachine, AsyncState

logger = logging.getLogger(__name__)

INITIALIZING = "initializing"
SERVING = "serving"
SHUTTING_DOWN = "shutting_down"
STOPPED = "stopped"
FAILED = "failed"

STATES: list[AsyncState] = [
    AsyncState(INITIALIZING),
    AsyncState(SERVING),
    AsyncState(SHUTTING_DOWN),
    AsyncState(STOPPED),
    AsyncState(FAILED),
]

TERMINAL_STATES: frozenset[str] = frozenset({STOPPED, FAILED})

TRANSITIONS: list[dict[str, Any]] = [
    {
        "trigger": "begin_serving",
        "source": INITIALIZING,
        "dest": SERVING,
    },
    {
        "trigger": "begin_shutdown",
        "source": SERVING,
        "dest": SHUTTING_DOWN,
    },
    {
        "trigger": "finish_shutdown",
        "source": SHUTTING_DOWN,
        "dest": STOPPED,
    },
    {
        "trigger": "fail",
        "source": [INITIALIZING, SERVING, SHUTTING_DOWN],
        "dest": FAILED,
    },
]


def _log_transition(event: Any) -> None:
    logger.debug(
        "Lifecycle transition: %s -> %s (%s)",
        event.transition.source,
        event.transition.dest,
        event.event.name,
    )


def create_lifecycle_machine(
    model: Any, initial_state: str = INITIALIZING
) -> AsyncMachine:
    """Create and return an ``AsyncMachine`` bound to *model*.

    Triggers are coroutines on the model (``await model.begin_serving()``).
    Triggers that are invalid in the current state are ignored, so callers
    check ``model.state`` where ordering matters.

    Args:
        model: The object whose state the machine manages.
        initial_state: The initial state for the machine.

    Returns:
        Configured ``AsyncMachine`` instance.
    """
    machine = AsyncMachine(
        model=model,
        states=STATES,
        transitions=TRANSITIONS,
        initial=initial_state,
        auto_transitions=False,
        send_event=True,
        queued=True,
        ignore_invalid_triggers=True,
        after_state_change=_log_transition,
    )
    return machine
