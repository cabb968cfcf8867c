from dataclasses import dataclass, asdict


@dataclass(frozen=True)
class CalorieConstants:
    """Tunable constants used by the calorie formulas."""

    low: float = 4.0
    medium: float = 7.0
    high: float = 10.0
    per_set: float = 5.0
    default_met: float = 7.0

    def met_table(self) -> dict[str, float]:
        return {"Faible": self.low, "Moyenne": self.medium, "Haute": self.high}

    def to_dict(self) -> dict[str, dict[str, float]]:
        """Return the shape exchanged with the admin endpoints."""
        return {
            "cardio": {"low": self.low, "medium": self.medium, "high": self.high},
            "muscu": {"perSet": self.per_set},
        }

    @classmethod
    def from_dict(cls, data: dict) -> "CalorieConstants":
        cardio = data.get("cardio") or {}
        muscu = data.get("muscu") or {}
        base = asdict(cls())
        values = {
            "low": float(cardio.get("low", base["low"])),
            "medium": float(cardio.get("medium", base["medium"])),
            "high": float(cardio.get("high", base["high"])),
            "per_set": float(muscu.get("perSet", base["per_set"])),
        }
        for key, val in values.items():
            if val <= 0:
                raise ValueError(f"{key} must be positive")
        return cls(**values)


DEFAULT_CONSTANTS = CalorieConstants()


class CalorieCalculator:
    """Simplified calorie formulas for cardio and strength sessions."""

    INTENSITIES = ("Faible", "Moyenne", "Haute")

    @staticmethod
    def met_for(
        intensity: str | None, constants: CalorieConstants = DEFAULT_CONSTANTS
    ) -> float:
        return constants.met_table().get(intensity or "", constants.default_met)

    @staticmethod
    def cardio_calories(
        intensity: str | None,
        body_weight: float,
        minutes: float,
        constants: CalorieConstants = DEFAULT_CONSTANTS,
    ) -> int:
        """Return ``round(MET * weight * minutes / 60)``."""
        met = CalorieCalculator.met_for(intensity, constants)
        return round(met * body_weight * minutes / 60)

    @staticmethod
    def strength_calories(
        sets: int, constants: CalorieConstants = DEFAULT_CONSTANTS
    ) -> int:
        return round(sets * constants.per_set)
