"""Build status state machine.

States move forward along::

    preparing -> queued -> extracting -> building -> completed

Any non-terminal state may move to ``failed``. Intermediate states may be
skipped, but a build never moves backwards and a terminal state is never
replaced by a different one. Writing the current status again is a no-op.
"""

from web2desk.types import BuildStatus

STATUS_RANK: dict[BuildStatus, int] = {
    BuildStatus.PREPARING: 0,
    BuildStatus.QUEUED: 1,
    BuildStatus.EXTRACTING: 2,
    BuildStatus.BUILDING: 3,
    BuildStatus.COMPLETED: 4,
    BuildStatus.FAILED: 4,
}

TERMINAL_STATUSES = frozenset({BuildStatus.COMPLETED, BuildStatus.FAILED})
INITIAL_STATUSES = frozenset({BuildStatus.PREPARING, BuildStatus.QUEUED})


class InvalidTransitionError(Exception):
    """Raised when a status change would break monotonicity."""

    def __init__(
        self,
        current: BuildStatus,
        target: BuildStatus,
        code: str = "invalid_transition",
    ) -> None:
        super().__init__(
            f"Cannot move build from '{current.value}' to '{target.value}'"
        )
        self.current = current
        self.target = target
        self.code = code


def is_terminal(status: BuildStatus) -> bool:
    """Check whether a status is terminal (completed or failed)."""
    return status in TERMINAL_STATUSES


def can_transition(current: BuildStatus, target: BuildStatus) -> bool:
    """Check whether a build may move from ``current`` to ``target``.

    Args:
        current: Status the build is in.
        target: Requested status.

    Returns:
        True for identical writes and allowed forward moves.
    """
    if current == target:
        return True
    if is_terminal(current):
        return False
    if target == BuildStatus.FAILED:
        return True
    return STATUS_RANK[target] > STATUS_RANK[current]


def check_transition(current: BuildStatus, target: BuildStatus) -> None:
    """Raise if a build may not move from ``current`` to ``target``.

    Raises:
        InvalidTransitionError: If the move is not allowed.
    """
    if not can_transition(current, target):
        raise InvalidTransitionError(current, target)


__all__ = [
    "INITIAL_STATUSES",
    "STATUS_RANK",
    "TERMINAL_STATUSES",
    "InvalidTransitionError",
    "can_transition",
    "check_transition",
    "is_terminal",
]
