"""
Daily Mix Composer.

Builds one time-boxed session from three slices:
- New content from the primary domain (60%)
- Interleaving from a neighbour or recall domain (20%)
- Due SRS reviews, most urgent first (20%)

The plan is derived state: it is recomputed every day from the card list,
the band status and the domain statuses, and never treated as authoritative.
"""

from __future__ import annotations

import math
import random
from datetime import datetime
from typing import Mapping, Optional, Sequence, Union

from loguru import logger

from orto_scheduler.adaptive.band_controller import generate_recovery_mix, get_day_one_band
from orto_scheduler.adaptive.domain_progression import get_neighbor_domains
from orto_scheduler.core.constants import DAILY_MIX_RATIOS, SRS, DailyMixRatios, SRSConstants
from orto_scheduler.core.enums import Band, Domain
from orto_scheduler.core.models import ContentItem, DailyMix, MixSlice, ReviewCard, ReviewSlice
from orto_scheduler.study.srs_engine import get_due_cards, prioritize_cards

CatalogEntry = Union[ContentItem, str]

# Sort key for items without a band: after every banded item
UNBANDED_DISTANCE = len(Band)


def _as_item(entry: CatalogEntry) -> ContentItem:
    return entry if isinstance(entry, ContentItem) else ContentItem(id=entry)


class DailyMixComposer:
    """
    Composes daily session plans.

    The algorithm:
    1. Split the time budget by the configured ratios
    2. Fill the new-content slice from the primary domain, target band first
    3. Pick one interleaving domain (user domains, neighbours, then recall)
    4. Fill the review slice with the most urgent due cards
    5. On a recovery day, serve everything one band easier with extra hints
    """

    def __init__(
        self,
        ratios: Optional[DailyMixRatios] = None,
        srs: SRSConstants = SRS,
        rng: Optional[random.Random] = None,
    ):
        """
        Initialize composer.

        Args:
            ratios: DailyMixRatios or None for defaults
            srs: SRS parameters used for review prioritisation
            rng: Random source for the interleaving domain
        """
        self.ratios = ratios or DAILY_MIX_RATIOS
        self.srs = srs
        self.rng = rng or random.Random()

    def item_count(self, minutes: float) -> int:
        """Convert a time budget into an item count."""
        if minutes <= 0:
            return 0
        return math.ceil(minutes / self.ratios.minutes_per_item)

    def estimate_minutes(self, budget: float, items: int) -> float:
        """Time actually planned for a slice: never more than its budget."""
        return min(budget, items * self.ratios.minutes_per_item)

    def select_content(
        self,
        entries: Sequence[CatalogEntry],
        target_band: Band,
        count: int,
    ) -> list[str]:
        """
        Pick up to `count` content ids, closest to the target band first.

        Items at the target band come first; when those run out, items from
        the nearest other bands fill the slice (easier before harder at equal
        distance). Catalog order is kept within a band.
        """
        if count <= 0:
            return []

        items = [_as_item(entry) for entry in entries]

        def distance(item: ContentItem) -> tuple[int, int]:
            if item.band is None:
                return UNBANDED_DISTANCE, 0
            return abs(item.band - target_band), int(item.band > target_band)

        ranked = sorted(items, key=distance)
        selected = ranked[:count]

        off_band = sum(1 for item in selected if item.band is not None and item.band != target_band)
        if off_band:
            logger.warning(
                f"Only {len(selected) - off_band} items at band {target_band}, "
                f"filled {off_band} from neighbouring bands"
            )
        return [item.id for item in selected]

    def choose_interleaving_domain(
        self,
        primary_domain: Domain,
        completed_domains: Sequence[Domain],
        user_domains: Sequence[Domain] = (),
    ) -> tuple[Optional[Domain], str]:
        """
        Pick the interleaving source domain.

        Returns:
            Tuple of (domain or None, reasoning)
        """
        candidates = [d for d in user_domains if d != primary_domain]
        if not candidates:
            candidates = get_neighbor_domains(primary_domain)
        if candidates:
            domain = self.rng.choice(candidates)
            return domain, (
                f"Mixed content from {domain.value} to strengthen long-term memory "
                f"and build connections"
            )

        if completed_domains:
            domain = self.rng.choice(list(completed_domains))
            return domain, f"Review from earlier domain {domain.value} to keep long-term knowledge"

        logger.warning(f"No interleaving domain available for {primary_domain.value}")
        return None, ""

    def compose(
        self,
        primary_domain: Domain,
        target_band: Band,
        srs_cards: Sequence[ReviewCard],
        available_new_content: Mapping[Domain, Sequence[CatalogEntry]],
        completed_domains: Sequence[Domain] = (),
        is_recovery_day: bool = False,
        target_minutes: float = 30,
        user_domains: Sequence[Domain] = (),
        recent_domains: Sequence[Domain] = (),
        is_first_day: bool = False,
        difficult_follow_up: bool = False,
        weak_domains: Sequence[Domain] = (),
        now: Optional[datetime] = None,
    ) -> DailyMix:
        """
        Compose today's session plan.

        Args:
            primary_domain: Domain the learner is working through
            target_band: Band from the band controller
            srs_cards: All of the learner's review cards
            available_new_content: Unseen catalog entries per domain
            completed_domains: Domains already completed (recall pool)
            is_recovery_day: Serve one band easier with extra hints
            target_minutes: Session length
            user_domains: Other domains the learner enrolled in
            recent_domains: Recently studied domains (review urgency)
            is_first_day: Soften the very first session by one band
            difficult_follow_up: Yesterday was a difficult day
            weak_domains: Domains with low retention, echoed for the UI
            now: Plan date

        Returns:
            DailyMix for today
        """
        now = now or datetime.now()
        band = Band.parse(target_band)

        extra_hints = False
        encouragement = None
        if is_recovery_day:
            recovery = generate_recovery_mix(band)
            band = recovery.target_band
            extra_hints = recovery.extra_hints
            encouragement = recovery.encouragement
        elif is_first_day:
            band = get_day_one_band(band)

        new_budget = target_minutes * self.ratios.new_content
        interleave_budget = target_minutes * self.ratios.interleaving
        review_budget = target_minutes * self.ratios.srs_review

        # 1. New content
        new_ids = self.select_content(
            available_new_content.get(primary_domain, ()),
            band,
            self.item_count(new_budget),
        )
        if is_recovery_day:
            new_reasoning = (
                f"Easier content from {primary_domain.value} to consolidate knowledge in recovery mode"
            )
        else:
            new_reasoning = (
                f"New content from your primary domain {primary_domain.value} to build deep understanding"
            )
        new_slice = MixSlice(
            domain=primary_domain,
            item_ids=tuple(new_ids),
            estimated_minutes=self.estimate_minutes(new_budget, len(new_ids)),
            reasoning=new_reasoning,
        )

        # 2. Interleaving
        interleave_slice = None
        interleave_domain, interleave_reasoning = self.choose_interleaving_domain(
            primary_domain, completed_domains, user_domains
        )
        if interleave_domain is not None:
            interleave_ids = self.select_content(
                available_new_content.get(interleave_domain, ()),
                band,
                self.item_count(interleave_budget),
            )
            interleave_slice = MixSlice(
                domain=interleave_domain,
                item_ids=tuple(interleave_ids),
                estimated_minutes=self.estimate_minutes(interleave_budget, len(interleave_ids)),
                reasoning=interleave_reasoning,
            )

        # 3. Due reviews
        review_count = self.item_count(review_budget)
        reviews = []
        if review_count:
            reviews = prioritize_cards(
                get_due_cards(srs_cards, now),
                primary_domain,
                recent_domains,
                limit=review_count,
                now=now,
                constants=self.srs,
            )
        review_slice = ReviewSlice(
            card_ids=tuple(card.id for card in reviews),
            estimated_minutes=self.estimate_minutes(review_budget, len(reviews)),
        )

        total = new_slice.estimated_minutes + review_slice.estimated_minutes
        if interleave_slice is not None:
            total += interleave_slice.estimated_minutes

        mix = DailyMix(
            date=now,
            new_content=new_slice,
            interleaving=interleave_slice,
            srs_reviews=review_slice,
            total_estimated_minutes=total,
            target_band=band,
            is_recovery_day=is_recovery_day,
            extra_hints=extra_hints,
            encouragement=encouragement,
            difficult_follow_up=difficult_follow_up,
            weak_domains=tuple(weak_domains),
        )

        logger.info(
            f"Daily mix for {primary_domain.value} at band {band}: "
            f"{len(new_slice.item_ids)} new, "
            f"{len(interleave_slice.item_ids) if interleave_slice else 0} interleaved, "
            f"{len(review_slice.card_ids)} reviews (~{total:.0f} min)"
        )
        return mix


def generate_daily_mix(
    primary_domain: Domain,
    target_band: Band,
    srs_cards: Sequence[ReviewCard],
    available_new_content: Mapping[Domain, Sequence[CatalogEntry]],
    completed_domains: Sequence[Domain] = (),
    is_recovery_day: bool = False,
    target_minutes: float = 30,
    ratios: Optional[DailyMixRatios] = None,
    rng: Optional[random.Random] = None,
    **options,
) -> DailyMix:
    """Compose a daily mix with a one-off composer. See DailyMixComposer.compose."""
    composer = DailyMixComposer(ratios=ratios, rng=rng)
    return composer.compose(
        primary_domain,
        target_band,
        srs_cards,
        available_new_content,
        completed_domains=completed_domains,
        is_recovery_day=is_recovery_day,
        target_minutes=target_minutes,
        **options,
    )
