"""Content preconditions for entering a status.

Each rule guards exactly one target status and inspects the *candidate*
publication: the stored record with the request's review notes applied.
"""

from collections.abc import Callable

from ..core.errors import ValidationError
from ..core.models import Publication, PublicationStatus
from ..utils.log import get_logger

log = get_logger(__name__)

TransitionRule = Callable[[Publication], None]


def _blank(value: str | None) -> bool:
    return not value or not value.strip()


def require_reviewable(pub: Publication) -> None:
    if _blank(pub.title):
        raise ValidationError("Title is required for review")
    if _blank(pub.content):
        raise ValidationError("Content is required for review")
    if pub.status not in (PublicationStatus.DRAFT, PublicationStatus.REJECTED):
        raise ValidationError("Only DRAFT or REJECTED publications can go to IN_REVIEW")


def require_approvable(pub: Publication) -> None:
    if pub.status != PublicationStatus.IN_REVIEW:
        raise ValidationError("Only IN_REVIEW publications can be APPROVED")
    if _blank(pub.review_notes):
        raise ValidationError("Review notes are required for approval")


def require_publishable(pub: Publication) -> None:
    if pub.status != PublicationStatus.APPROVED:
        raise ValidationError("Only APPROVED publications can be PUBLISHED")


def require_rejectable(pub: Publication) -> None:
    if pub.status == PublicationStatus.PUBLISHED:
        raise ValidationError("Published publications cannot be REJECTED")
    if _blank(pub.review_notes):
        raise ValidationError("Review notes are required for rejection")


# Insertion order is the evaluation order
TRANSITION_RULES: dict[PublicationStatus, TransitionRule] = {
    PublicationStatus.IN_REVIEW: require_reviewable,
    PublicationStatus.APPROVED: require_approvable,
    PublicationStatus.PUBLISHED: require_publishable,
    PublicationStatus.REJECTED: require_rejectable,
}


class TransitionValidationFacade:
    """Runs the registered rules for a requested status; the first failure wins."""

    def __init__(
        self, rules: dict[PublicationStatus, TransitionRule | list[TransitionRule]] | None = None
    ) -> None:
        source = TRANSITION_RULES if rules is None else rules
        self.rules: list[tuple[PublicationStatus, TransitionRule]] = []
        for target, rule_or_rules in source.items():
            group = rule_or_rules if isinstance(rule_or_rules, list) else [rule_or_rules]
            self.rules.extend((target, rule) for rule in group)

    def validate_transition(self, candidate: Publication, requested: PublicationStatus) -> None:
        """
        Raise ValidationError from the first rule that rejects ``candidate``.

        Rules registered for other target statuses are skipped, so for the
        default set at most one rule runs.
        """
        for target, rule in self.rules:
            if target != requested:
                continue
            try:
                rule(candidate)
            except ValidationError as e:
                log.info(
                    "transition_rule_failed",
                    publication_id=candidate.id,
                    current=candidate.status.value,
                    requested=requested.value,
                    reason=e.message,
                )
                raise
