"""User demographic profile and demographic risk scoring."""

from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Any, Dict, FrozenSet, Optional

from src.utils.preprocessing import age_in_years


class Gender(Enum):
    MALE = "male"
    FEMALE = "female"
    OTHER = "other"

    @classmethod
    def parse(cls, value: str) -> "Gender":
        normalized = value.strip().lower()
        aliases = {"m": "male", "f": "female", "man": "male", "woman": "female"}
        normalized = aliases.get(normalized, normalized)
        try:
            return cls(normalized)
        except ValueError:
            raise ValueError(f"Unknown gender: {value!r}") from None


@dataclass(frozen=True)
class UserProfile:
    """Demographic context used to resolve guidelines for one user."""
    user_id: str
    birth_date: date
    gender: Gender
    risk_factors: FrozenSet[str] = field(default_factory=frozenset)

    def __post_init__(self):
        if not self.user_id:
            raise ValueError("UserProfile requires a user_id")
        # Accept any iterable of risk factor names, store them normalized
        object.__setattr__(
            self,
            "risk_factors",
            frozenset(rf.strip().lower() for rf in self.risk_factors if rf.strip()),
        )

    def age_on(self, on: date) -> int:
        if on < self.birth_date:
            raise ValueError(
                f"Assessment date {on} precedes birth date {self.birth_date}"
            )
        return age_in_years(self.birth_date, on)


# Demographic scoring defaults (overridable via config['risk']['demographic'])
DEFAULT_DEMOGRAPHIC_CONFIG: Dict[str, Any] = {
    'age_floor': 30,         # no age contribution below this age
    'points_per_year': 1.0,  # per year above the floor
    'age_cap': 50.0,         # max points from age alone
    'points_per_risk_factor': 15.0,
}


def demographic_risk(
    profile: UserProfile,
    on: date,
    settings: Optional[Dict[str, Any]] = None,
) -> float:
    """
    Demographic risk normalized to [0, 100]

    Age contributes linearly above a floor (capped), and each declared
    risk factor adds a fixed number of points.
    """
    cfg = dict(DEFAULT_DEMOGRAPHIC_CONFIG)
    if settings:
        cfg.update(settings)

    age = profile.age_on(on)
    age_points = min(
        max(0, age - cfg['age_floor']) * cfg['points_per_year'],
        cfg['age_cap'],
    )
    factor_points = len(profile.risk_factors) * cfg['points_per_risk_factor']
    return float(min(100.0, age_points + factor_points))
