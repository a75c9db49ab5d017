"""
Incentive Engine - pure calculator plus policy resolution.
"""

from drd.engines.incentives.calculator import (
    allocate,
    compute,
    normalize_quartile,
    resolve_pool,
    validate_authors,
    zero_result,
)
from drd.engines.incentives.defaults import default_policy_terms
from drd.engines.incentives.policy_resolver import PolicyRepository, windows_overlap
from drd.engines.incentives.types import (
    AuthorInput,
    AuthorShare,
    DistributionMethod,
    IncentiveInput,
    IncentiveResult,
    IndexingMetadata,
    PolicyTerms,
)

__all__ = [
    "allocate",
    "compute",
    "normalize_quartile",
    "resolve_pool",
    "validate_authors",
    "zero_result",
    "default_policy_terms",
    "PolicyRepository",
    "windows_overlap",
    "AuthorInput",
    "AuthorShare",
    "DistributionMethod",
    "IncentiveInput",
    "IncentiveResult",
    "IndexingMetadata",
    "PolicyTerms",
]
