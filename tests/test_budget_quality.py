"""Tests for the run budget and the publish decision."""

import pytest

from autopulse.generator.budget import (
    STOP_MAX_ITEMS,
    STOP_TARGET_REACHED,
    STOP_TIME_BUDGET,
    BudgetSupervisor,
    RunBudget,
)
from autopulse.generator.models import TITLE_MAX_CHARS, GeneratedDraft, QualityChecks
from autopulse.generator.quality import decide_publish


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


BUDGET = RunBudget(
    max_duration_seconds=270,
    max_items=15,
    target_items=10,
    seconds_per_item=25,
    safety_buffer_seconds=15,
)


def _supervisor(processed=0, elapsed=0.0, budget=BUDGET):
    clock = FakeClock()
    supervisor = BudgetSupervisor(budget, clock=clock)
    for _ in range(processed):
        supervisor.record_processed()
    clock.advance(elapsed)
    return supervisor


def test_continues_with_plenty_of_time():
    assert _supervisor().should_continue() == (True, None)


def test_hard_cap_always_wins():
    supervisor = _supervisor(processed=15, elapsed=0)
    assert supervisor.should_continue() == (False, STOP_MAX_ITEMS)
    assert supervisor.stop_reason == STOP_MAX_ITEMS


def test_below_target_pushes_until_one_item_fits():
    # 40s left == 25 + 15, still enough
    assert _supervisor(processed=3, elapsed=230).should_continue() == (True, None)
    # 39s left is not
    assert _supervisor(processed=3, elapsed=231).should_continue() == (False, STOP_TIME_BUDGET)


def test_bonus_items_need_comfortable_margin():
    # 65s left == 2 * 25 + 15
    assert _supervisor(processed=10, elapsed=205).should_continue() == (True, None)
    # 60s left would be enough below target, but not for a bonus item
    assert _supervisor(processed=10, elapsed=210).should_continue() == (False, STOP_TARGET_REACHED)
    assert _supervisor(processed=9, elapsed=210).should_continue() == (True, None)


def test_elapsed_and_remaining():
    supervisor = _supervisor(elapsed=100)
    assert supervisor.elapsed == pytest.approx(100)
    assert supervisor.remaining == pytest.approx(170)


def test_budget_from_settings(settings):
    budget = RunBudget.from_settings(settings)
    assert budget.max_items == settings.max_articles_per_run
    assert budget.target_items == settings.target_articles
    assert budget.required_for_next == settings.estimated_seconds_per_article + settings.safety_buffer_seconds


def _draft(confidence, **checks):
    defaults = dict(has_data=True, has_sources=True, structure_valid=True)
    defaults.update(checks)
    return GeneratedDraft(
        title="Tesla trims prices",
        content="Body text.",
        confidence=confidence,
        quality_checks=QualityChecks(**defaults),
    )


@pytest.mark.parametrize("confidence,checks,publish", [
    (95, {}, True),
    (95, {'structure_valid': False}, True),
    (85, {}, True),
    (85, {'has_data': False}, False),
    (75, {}, False),
    (50, {}, False),
    (99, {'has_sources': False}, False),
    (99, {'has_banned_words': True}, False),
    (99, {'has_unverified': True}, False),
])
def test_decide_publish(confidence, checks, publish):
    assert decide_publish(_draft(confidence, **checks)).should_publish is publish


def test_decide_publish_reasons():
    assert "review" in decide_publish(_draft(72)).reason
    assert "too low" in decide_publish(_draft(40)).reason
    assert "source" in decide_publish(_draft(99, has_sources=False)).reason


def test_draft_rejects_blank_title():
    with pytest.raises(ValueError):
        GeneratedDraft(title="   ", content="Body")


def test_draft_normalizes_long_slug():
    draft = GeneratedDraft(
        title="Headline",
        content="Body",
        slug="BYD Seal U DM-i " + "long-tail-keyword-" * 20,
    )

    assert draft.slug.startswith("byd-seal-u-dm-i-long-tail-keyword")
    assert len(draft.slug) <= 80


def test_draft_truncates_long_title():
    draft = GeneratedDraft(title="  " + "x" * 900 + "  ", content="Body")

    assert len(draft.title) == TITLE_MAX_CHARS


def test_draft_keeps_empty_slug_empty():
    assert GeneratedDraft(title="Headline", content="Body").slug == ""
