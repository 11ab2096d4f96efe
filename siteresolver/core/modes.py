"""Discovery aggressiveness modes and their threshold profiles."""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Union

from siteresolver.core.exceptions import ConfigurationError


class DiscoveryMode(str, Enum):
    """Discovery modes, ordered by increasing recall and cost."""
    FAST = "FAST"
    DEEP = "DEEP"
    AGGRESSIVE = "AGGRESSIVE"
    EXHAUSTIVE = "EXHAUSTIVE"

    @classmethod
    def parse(cls, value: Union[str, 'DiscoveryMode']) -> 'DiscoveryMode':
        """Parse a mode name case-insensitively.

        Raises:
            ConfigurationError: If the name is not a known mode
        """
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().upper())
        except ValueError:
            raise ConfigurationError(
                f"Unknown discovery mode: {value!r}. "
                f"Expected one of: {', '.join(m.value for m in cls)}"
            )


@dataclass(frozen=True)
class ModeProfile:
    """Call-time configuration bound to a discovery mode."""
    threshold_delta: float
    max_candidates: int
    run_exhaustive: bool

    def __post_init__(self):
        """Validate profile values."""
        if self.max_candidates <= 0:
            raise ValueError("Max candidates per layer must be positive")
        if not (-0.5 <= self.threshold_delta <= 0.5):
            raise ValueError("Threshold delta must be between -0.5 and 0.5")


MODE_PROFILES: Dict[DiscoveryMode, ModeProfile] = {
    DiscoveryMode.FAST: ModeProfile(threshold_delta=0.05, max_candidates=8, run_exhaustive=False),
    DiscoveryMode.DEEP: ModeProfile(threshold_delta=0.0, max_candidates=15, run_exhaustive=False),
    DiscoveryMode.AGGRESSIVE: ModeProfile(threshold_delta=-0.05, max_candidates=20, run_exhaustive=False),
    DiscoveryMode.EXHAUSTIVE: ModeProfile(threshold_delta=-0.08, max_candidates=30, run_exhaustive=True),
}

MIN_THRESHOLD = 0.10
MAX_THRESHOLD = 0.99


def get_profile(mode: Union[str, DiscoveryMode]) -> ModeProfile:
    """Return the profile of a mode (name or enum member)."""
    return MODE_PROFILES[DiscoveryMode.parse(mode)]


def effective_threshold(base: float, profile: ModeProfile) -> float:
    """Apply a profile's delta to a baseline acceptance threshold.

    Args:
        base: Baseline acceptance threshold (0-1)
        profile: Mode profile

    Returns:
        Threshold clamped to [0.10, 0.99]
    """
    return round(min(MAX_THRESHOLD, max(MIN_THRESHOLD, base + profile.threshold_delta)), 4)
