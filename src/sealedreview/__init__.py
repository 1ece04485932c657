"""SealedReview — confidential peer-review scores on an FHE-enabled ledger."""

from sealedreview.coordinator import LifecycleCoordinator
from sealedreview.models.review import ReviewInput, ReviewRecord, ReviewStats
from sealedreview.policy.resolver import PolicyResolver

__version__ = "0.1.0"

__all__ = [
    "LifecycleCoordinator",
    "PolicyResolver",
    "ReviewInput",
    "ReviewRecord",
    "ReviewStats",
]
