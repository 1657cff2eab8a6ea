"""
Recommendation message library used by the simulator and demo seed.
Placeholders: {name} (battery name) and {health} (health percentage).
"""
from dataclasses import dataclass

from battery_monitor.modules.batteries.schemas import RecommendationType


@dataclass(frozen=True)
class RecommendationTemplate:
    type: RecommendationType
    message: str

    def render(self, name: str, health: float) -> str:
        return self.message.format(name=name, health=health)


RECOMMENDATION_TEMPLATES: tuple[RecommendationTemplate, ...] = (
    RecommendationTemplate(
        RecommendationType.INFO,
        "Avoid charging Battery {name} beyond 90% to extend lifespan.",
    ),
    RecommendationTemplate(
        RecommendationType.WARNING,
        "Battery {name} discharge depth detected beyond optimal range. Consider shallower cycles.",
    ),
    RecommendationTemplate(
        RecommendationType.SUCCESS,
        "Battery {name} is maintaining excellent health. Continue current usage patterns.",
    ),
    RecommendationTemplate(
        RecommendationType.INFO,
        "Optimal charging practice: keep all batteries between 20% and 80%.",
    ),
    RecommendationTemplate(
        RecommendationType.WARNING,
        "High temperature detected during operation of Battery {name}. Consider improved cooling.",
    ),
    RecommendationTemplate(
        RecommendationType.ERROR,
        "Battery {name} nearing end of life with {health}% health. Plan for replacement.",
    ),
)

# Seed data draws from the battery specific templates only
SEED_TEMPLATES = RECOMMENDATION_TEMPLATES[:3]

GENERAL_TEMPLATE = RECOMMENDATION_TEMPLATES[3]
