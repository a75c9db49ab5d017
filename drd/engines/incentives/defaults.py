"""
Built-in fallback tables, used only when incentive_missing_policy_mode is
"default_table" and no stored policy covers a submission. Results priced
from these tables are always tagged with a warning.
"""

from typing import Dict, Optional

from drd.engines.incentives.types import DistributionMethod, PolicyTerms
from drd.kernel.models.policy import PolicyScope

_IPR_BASE = {
    "patent": (50000, 50),
    "copyright": (15000, 20),
    "trademark": (10000, 15),
    "design": (20000, 25),
}

_RESEARCH_BONUSES = {
    "category_bonuses": {
        "nature_science_lancet_cell_nejm": {"amount": 200000, "points": 100},
        "subsidiary_if_above_20": {"amount": 100000, "points": 50, "min_impact_factor": 20},
        "abdc_scopus_wos": {"amount": 20000, "points": 20},
        "pubmed": {"amount": 15000, "points": 15},
        "case_centre_uk": {"amount": 8000, "points": 8},
        "sgtu_in_house": {"amount": 5000, "points": 5},
    },
    "quartile_bonuses": {
        "Top 1%": {"amount": 75000, "points": 75},
        "Top 5%": {"amount": 60000, "points": 60},
        "Q1": {"amount": 50000, "points": 50},
        "Q2": {"amount": 30000, "points": 30},
        "Q3": {"amount": 15000, "points": 15},
        "Q4": {"amount": 5000, "points": 5},
    },
    "sjr_ranges": [
        {"min": 2.0, "max": 999, "amount": 50000, "points": 50},
        {"min": 1.0, "max": 1.99, "amount": 30000, "points": 30},
        {"min": 0.5, "max": 0.99, "amount": 15000, "points": 15},
        {"min": 0, "max": 0.49, "amount": 5000, "points": 5},
    ],
    "rating_bonuses": {
        "naas": {
            "6": {"amount": 10000, "points": 10},
            "8": {"amount": 20000, "points": 20},
            "10": {"amount": 30000, "points": 30},
        },
    },
}

_DEFAULT_ROLES: Dict[str, int] = {"first_author": 40, "corresponding_author": 40}


def default_policy_terms(scope: PolicyScope) -> Optional[PolicyTerms]:
    """Fallback terms for a scope, or None when no table exists for it."""
    if scope.submission_kind == "ipr":
        base = _IPR_BASE.get(scope.sub_type)
        if base is None:
            return None
        return PolicyTerms(
            distribution_method=DistributionMethod.EQUAL_SPLIT,
            base_amount=base[0],
            base_points=base[1],
        )
    if scope.sub_type == "research_paper":
        return PolicyTerms(
            distribution_method=DistributionMethod.AUTHOR_ROLE_BASED,
            role_percentages=_DEFAULT_ROLES,
            indexing_bonuses=_RESEARCH_BONUSES,
        )
    return None
