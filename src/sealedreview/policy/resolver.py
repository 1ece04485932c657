"""Policy resolver — loads lifecycle_policy.json and exposes every runtime
decision of the review lifecycle as a typed method call.

No magic. No defaults. If a value is missing from the config, it fails loud.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path
from typing import Any, Optional

from sealedreview.models.status import StatusKind


@dataclass(frozen=True)
class ScoreRange:
    """Inclusive range of plaintext scores the encryption scheme accepts."""
    minimum: int
    maximum: int

    def contains(self, score: int) -> bool:
        return self.minimum <= score <= self.maximum


class PolicyResolver:
    """Loads and resolves the lifecycle policy.

    Usage:
        resolver = PolicyResolver.from_config_dir(Path("config"))
        resolver.score_range().contains(7)
        resolver.display_seconds(StatusKind.SUCCESS)
    """

    def __init__(self, policy: dict[str, Any]) -> None:
        self._policy = policy
        self._validate()

    @classmethod
    def from_config_dir(cls, config_dir: Path) -> PolicyResolver:
        """Load from the canonical config directory."""
        return cls(_load_json(config_dir / "lifecycle_policy.json"))

    def _validate(self) -> None:
        if "version" not in self._policy:
            raise ValueError("lifecycle_policy.json missing version")
        rng = self.score_range()
        if rng.minimum > rng.maximum:
            raise ValueError(
                f"Score range is empty: min {rng.minimum} > max {rng.maximum}"
            )
        if self.confirmation_timeout() <= 0:
            raise ValueError("confirmation_timeout_seconds must be positive")

    @property
    def version(self) -> str:
        return self._policy["version"]

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    def score_range(self) -> ScoreRange:
        s = self._policy["score"]
        return ScoreRange(minimum=int(s["min"]), maximum=int(s["max"]))

    def categories(self) -> list[str]:
        return list(self._policy["categories"])

    def default_category(self) -> str:
        """Category shown for records this client did not submit itself."""
        return self._policy["default_category"]

    def anonymous_author(self) -> str:
        """Author shown for records this client did not submit itself."""
        return self._policy["anonymous_author"]

    # ------------------------------------------------------------------
    # Timing
    # ------------------------------------------------------------------

    def recent_window(self) -> timedelta:
        return timedelta(days=self._policy["stats"]["recent_window_days"])

    def display_seconds(self, kind: StatusKind) -> Optional[float]:
        """How long a status stays visible. None means until replaced."""
        if kind == StatusKind.PENDING:
            return None
        return float(self._policy["status_display_seconds"][kind.value])

    def confirmation_timeout(self) -> float:
        return float(self._policy["confirmation_timeout_seconds"])


def _load_json(path: Path) -> dict[str, Any]:
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")
    with path.open("r", encoding="utf-8") as f:
        return json.load(f)
