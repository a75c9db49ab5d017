"""
Incentive Calculator

Pure function over (submission inputs, policy terms). No I/O, no clock, no
randomness: identical inputs serialise to identical results.

Pool resolution is additive across bucket types (base, category, quartile,
sjr, each rating scheme, international, best paper award) and exclusive
within a bucket type, where only the single best tier counts.
"""

from decimal import Decimal, ROUND_FLOOR, ROUND_HALF_UP
from typing import Dict, List, Optional, Sequence, Tuple, Union

from drd.engines.incentives.types import (
    HUNDRED,
    AuthorInput,
    AuthorShare,
    Bonus,
    DistributionMethod,
    IncentiveInput,
    IncentiveResult,
    IndexingMetadata,
    MatchedBonus,
    PolicyTerms,
)
from drd.orchestration.errors import ValidationError

WARNING_ZERO_POOL = "no_matching_bonus"

_QUARTILE_ALIASES: Dict[str, str] = {
    "top1": "Top 1%",
    "top 1": "Top 1%",
    "top 1%": "Top 1%",
    "top1%": "Top 1%",
    "top_1": "Top 1%",
    "top5": "Top 5%",
    "top 5": "Top 5%",
    "top 5%": "Top 5%",
    "top5%": "Top 5%",
    "top_5": "Top 5%",
    "q1": "Q1",
    "q2": "Q2",
    "q3": "Q3",
    "q4": "Q4",
}

_PERCENT_DISPLAY = Decimal("0.01")


def normalize_quartile(value: Optional[str]) -> Optional[str]:
    """Canonical quartile label ('Top 1%', 'Top 5%', 'Q1'..'Q4'), else the stripped input."""
    if value is None:
        return None
    cleaned = value.strip()
    return _QUARTILE_ALIASES.get(cleaned.lower(), cleaned)


def validate_authors(authors: Sequence[AuthorInput]) -> List[AuthorInput]:
    """Return authors sorted by position, or raise ValidationError."""
    if not authors:
        raise ValidationError("At least one author is required")
    positions = [a.position for a in authors]
    if any(p < 1 for p in positions):
        raise ValidationError("Author positions are 1-based")
    if len(set(positions)) != len(positions):
        raise ValidationError("Duplicate author positions")
    if 1 not in positions:
        raise ValidationError("No author at position 1")
    return sorted(authors, key=lambda a: a.position)


# ---------------------------------------------------------------------------
# Pool
# ---------------------------------------------------------------------------


def _best(candidates: List[Tuple[str, Bonus]]) -> Optional[Tuple[str, Bonus]]:
    """Highest amount, then highest points; earliest wins ties."""
    best: Optional[Tuple[str, Bonus]] = None
    for key, bonus in candidates:
        if best is None or (bonus.amount, bonus.points) > (best[1].amount, best[1].points):
            best = (key, bonus)
    return best


def _as_float(value: Union[str, float]) -> Optional[float]:
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _match_rating(tiers: Dict[str, Bonus], value: Union[str, float]) -> Optional[Tuple[str, Bonus]]:
    """Exact tier key first; for numeric ratings, the highest threshold not above the rating."""
    exact_keys = [str(value)]
    numeric = _as_float(value)
    if numeric is not None and numeric == int(numeric):
        exact_keys.append(str(int(numeric)))
    for key in exact_keys:
        if key in tiers:
            return key, tiers[key]
    if numeric is None:
        return None
    best: Optional[Tuple[float, str]] = None
    for key in tiers:
        threshold = _as_float(key)
        if threshold is None or threshold > numeric:
            continue
        if best is None or threshold > best[0]:
            best = (threshold, key)
    if best is None:
        return None
    return best[1], tiers[best[1]]


def resolve_pool(metadata: IndexingMetadata, policy: PolicyTerms) -> List[MatchedBonus]:
    """Every bonus bucket the metadata qualifies for, one tier per bucket type."""
    bonuses = policy.indexing_bonuses
    matched: List[MatchedBonus] = []

    if policy.base_amount or policy.base_points:
        matched.append(MatchedBonus(bucket="base", key="base", amount=policy.base_amount, points=policy.base_points))

    # Flat categories
    candidates: List[Tuple[str, Bonus]] = []
    for category in metadata.indexing_categories:
        bonus = bonuses.category_bonuses.get(category)
        if bonus is None:
            continue
        if bonus.min_impact_factor is not None:
            if metadata.impact_factor is None or metadata.impact_factor <= bonus.min_impact_factor:
                continue
        candidates.append((category, bonus))
    hit = _best(candidates)
    if hit:
        matched.append(MatchedBonus(bucket="category", key=hit[0], amount=hit[1].amount, points=hit[1].points))

    # Quartile
    quartile = normalize_quartile(metadata.quartile)
    if quartile:
        for key, bonus in bonuses.quartile_bonuses.items():
            if normalize_quartile(key) == quartile:
                matched.append(MatchedBonus(bucket="quartile", key=quartile, amount=bonus.amount, points=bonus.points))
                break

    # SJR: first range wins
    if metadata.sjr is not None:
        for sjr_range in bonuses.sjr_ranges:
            if sjr_range.contains(metadata.sjr):
                matched.append(MatchedBonus(
                    bucket="sjr",
                    key=f"{sjr_range.min_sjr}-{sjr_range.max_sjr}",
                    amount=sjr_range.amount,
                    points=sjr_range.points,
                ))
                break

    # Rating schemes, each its own bucket type
    ratings = metadata.rating_values()
    for scheme in sorted(bonuses.rating_bonuses):
        if scheme not in ratings:
            continue
        hit = _match_rating(bonuses.rating_bonuses[scheme], ratings[scheme])
        if hit:
            matched.append(MatchedBonus(bucket=f"rating:{scheme}", key=hit[0], amount=hit[1].amount, points=hit[1].points))

    if metadata.is_international and bonuses.international_bonus:
        b = bonuses.international_bonus
        matched.append(MatchedBonus(bucket="international", key="international", amount=b.amount, points=b.points))

    if metadata.best_paper_award and bonuses.best_paper_award_bonus:
        b = bonuses.best_paper_award_bonus
        matched.append(MatchedBonus(bucket="best_paper_award", key="best_paper_award", amount=b.amount, points=b.points))

    return matched


# ---------------------------------------------------------------------------
# Distribution
# ---------------------------------------------------------------------------


def position_bucket(position: int) -> str:
    return "6+" if position >= 6 else str(position)


def _role_percentage(role: str, table: Dict[str, Decimal]) -> Optional[Decimal]:
    if role in table:
        return table[role]
    if role == "first_and_corresponding_author":
        first = table.get("first_author")
        corresponding = table.get("corresponding_author")
        if first is not None or corresponding is not None:
            return (first or Decimal(0)) + (corresponding or Decimal(0))
    return None


def author_percentages(authors: Sequence[AuthorInput], policy: PolicyTerms) -> List[Decimal]:
    """
    Percentage of the pool each author receives, in author order.

    External authors get 0 and their share is not redistributed, except that
    the role-based unmatched remainder is divided among internal authors only.
    """
    zero = Decimal(0)
    if len(authors) == 1:
        return [HUNDRED if authors[0].is_internal else zero]

    method = policy.distribution_method
    if method == DistributionMethod.AUTHOR_POSITION_BASED:
        table = policy.position_based_distribution
        return [
            table.get(position_bucket(a.position), zero) if a.is_internal else zero
            for a in authors
        ]

    if method == DistributionMethod.EQUAL_SPLIT:
        internal = sum(1 for a in authors if a.is_internal)
        if not internal:
            return [zero] * len(authors)
        share = HUNDRED / internal
        return [share if a.is_internal else zero for a in authors]

    # Role based
    matched = [_role_percentage(a.author_role, policy.role_percentages) for a in authors]
    remainder = HUNDRED - sum((m for m in matched if m is not None), zero)
    if remainder < 0:
        raise ValidationError("Role percentages for these authors exceed 100")
    unmatched_internal = sum(1 for a, m in zip(authors, matched) if m is None and a.is_internal)
    each = remainder / unmatched_internal if unmatched_internal else zero
    percentages = []
    for a, m in zip(authors, matched):
        if not a.is_internal:
            percentages.append(zero)
        elif m is None:
            percentages.append(each)
        else:
            percentages.append(m)
    return percentages


def allocate(pool: int, percentages: Sequence[Decimal]) -> Tuple[int, List[int]]:
    """
    Split `pool` by percentages into whole units.

    The total is the rounded exact sum. Every share except the anchor (the
    first author with a non-zero percentage) is floored; the anchor takes the
    difference, so shares sum to the total exactly and none is negative.
    """
    shares = [0] * len(percentages)
    anchor = next((i for i, pct in enumerate(percentages) if pct > 0), None)
    if pool <= 0 or anchor is None:
        return 0, shares

    exact = [Decimal(pool) * pct / HUNDRED for pct in percentages]
    total = int(sum(exact, Decimal(0)).quantize(Decimal(1), rounding=ROUND_HALF_UP))
    for i, value in enumerate(exact):
        if i != anchor:
            shares[i] = int(value.to_integral_value(rounding=ROUND_FLOOR))
    shares[anchor] = total - sum(shares)
    return total, shares


def zero_result(
    submission: IncentiveInput,
    warning: Optional[str] = None,
) -> IncentiveResult:
    """All-zero result for a valid author list, used when no policy applies."""
    authors = validate_authors(submission.authors)
    return IncentiveResult(
        pool_amount=0,
        pool_points=0,
        total_amount=0,
        total_points=0,
        unallocated_amount=0,
        unallocated_points=0,
        warnings=[warning] if warning else [],
        per_author=[
            AuthorShare(
                author_ref=a.author_ref,
                person_ref=a.person_ref,
                position=a.position,
                author_role=a.author_role,
                percentage=Decimal(0).quantize(_PERCENT_DISPLAY),
                amount_share=0,
                points_share=0,
            )
            for a in authors
        ],
    )


def compute(submission: IncentiveInput, policy: PolicyTerms) -> IncentiveResult:
    """
    Price a submission under a policy.

    Raises:
        ValidationError: malformed author list, or role percentages over 100
    """
    authors = validate_authors(submission.authors)
    matched = resolve_pool(submission.metadata, policy)
    pool_amount = sum(m.amount for m in matched)
    pool_points = sum(m.points for m in matched)

    percentages = author_percentages(authors, policy)
    # Students are paid but earn no points
    point_percentages = [
        Decimal(0) if a.is_student else pct for a, pct in zip(authors, percentages)
    ]
    total_amount, amount_shares = allocate(pool_amount, percentages)
    total_points, point_shares = allocate(pool_points, point_percentages)

    warnings: List[str] = []
    if pool_amount == 0 and pool_points == 0:
        warnings.append(WARNING_ZERO_POOL)

    return IncentiveResult(
        pool_amount=pool_amount,
        pool_points=pool_points,
        total_amount=total_amount,
        total_points=total_points,
        unallocated_amount=pool_amount - total_amount,
        unallocated_points=pool_points - total_points,
        distribution_method=policy.distribution_method,
        policy_id=policy.policy_id,
        policy_version=policy.version,
        matched_bonuses=matched,
        warnings=warnings,
        per_author=[
            AuthorShare(
                author_ref=a.author_ref,
                person_ref=a.person_ref,
                position=a.position,
                author_role=a.author_role,
                percentage=pct.quantize(_PERCENT_DISPLAY, rounding=ROUND_HALF_UP),
                amount_share=amount,
                points_share=points,
            )
            for a, pct, amount, points in zip(authors, percentages, amount_shares, point_shares)
        ],
    )
