"""Publish decision for a generated draft."""

from dataclasses import dataclass

from autopulse.generator.models import GeneratedDraft

PUBLISH_HIGH_CONFIDENCE = 90
PUBLISH_CONFIDENCE = 80
REVIEW_CONFIDENCE = 70


@dataclass(frozen=True)
class PublishDecision:
    should_publish: bool
    reason: str


def decide_publish(draft: GeneratedDraft) -> PublishDecision:
    """
    Decide whether a draft goes live or waits for review.

    Hard rejections come first, then confidence tiers. A rejected draft is
    still committed, just unpublished.
    """
    checks = draft.quality_checks
    conf = draft.confidence

    if not checks.has_sources:
        return PublishDecision(False, "missing source attribution")
    if checks.has_banned_words:
        return PublishDecision(False, "contains banned words")
    if checks.has_unverified:
        return PublishDecision(False, "contains unverified claims")

    if conf >= PUBLISH_HIGH_CONFIDENCE and checks.has_data and checks.structure_valid:
        return PublishDecision(True, "high quality")
    if conf >= PUBLISH_CONFIDENCE and checks.has_data:
        return PublishDecision(True, "meets quality bar")
    if conf >= REVIEW_CONFIDENCE:
        return PublishDecision(False, f"confidence {conf:g} needs manual review")
    return PublishDecision(False, f"confidence {conf:g} too low")
