"""Structural legality of publication status changes.

Only answers "is ``target`` reachable from ``current`` at all"; content
preconditions live in :mod:`editorial_registry.publications.validators`.
"""

from ..core.errors import IllegalTransitionError
from ..core.models import PublicationStatus

TRANSITIONS: dict[PublicationStatus, frozenset[PublicationStatus]] = {
    PublicationStatus.DRAFT: frozenset({PublicationStatus.IN_REVIEW, PublicationStatus.REJECTED}),
    PublicationStatus.IN_REVIEW: frozenset(
        {PublicationStatus.APPROVED, PublicationStatus.REJECTED, PublicationStatus.DRAFT}
    ),
    PublicationStatus.APPROVED: frozenset({PublicationStatus.PUBLISHED}),
    PublicationStatus.PUBLISHED: frozenset(),  # terminal
    PublicationStatus.REJECTED: frozenset({PublicationStatus.DRAFT}),
}


class StatusStateMachine:
    def __init__(
        self, transitions: dict[PublicationStatus, frozenset[PublicationStatus]] | None = None
    ) -> None:
        self.transitions = transitions if transitions is not None else TRANSITIONS

    def allowed_targets(self, current: PublicationStatus) -> frozenset[PublicationStatus]:
        return self.transitions.get(current, frozenset())

    def can_transition(self, current: PublicationStatus, target: PublicationStatus) -> bool:
        return target in self.allowed_targets(current)

    def is_terminal(self, status: PublicationStatus) -> bool:
        return not self.allowed_targets(status)

    def ensure_transition(self, current: PublicationStatus, target: PublicationStatus) -> None:
        """Raise IllegalTransitionError unless ``current -> target`` is an edge."""
        if not self.can_transition(current, target):
            raise IllegalTransitionError(current.value, target.value)
