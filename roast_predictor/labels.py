"""
Roast label table.

Order matches the model's output index and must not change.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Tuple


class RoastLevel(Enum):
    """Classification target."""
    DARK = "Dark"
    GREEN = "Green"
    LIGHT = "Light"
    MEDIUM = "Medium"


@dataclass(frozen=True)
class ClassLabel:
    """A roast level and its flavor description."""
    name: RoastLevel
    description: str

    @property
    def display_name(self) -> str:
        return self.name.value


CLASS_LABELS: Tuple[ClassLabel, ...] = (
    ClassLabel(
        name=RoastLevel.DARK,
        description=(
            "Strong, smoky flavor with low acidity and an oily bean surface. "
            "Often carries chocolate or caramel notes."
        ),
    ),
    ClassLabel(
        name=RoastLevel.GREEN,
        description=(
            "Unroasted beans with a grassy or herbal taste. "
            "Higher acidity and caffeine before roasting."
        ),
    ),
    ClassLabel(
        name=RoastLevel.LIGHT,
        description=(
            "Light brown with no oil on the bean surface. Bright acidity with "
            "floral or fruity aroma and a toasted-grain taste."
        ),
    ),
    ClassLabel(
        name=RoastLevel.MEDIUM,
        description=(
            "Balanced flavor with medium acidity and body. "
            "Caramel sweetness with hints of nuts or chocolate."
        ),
    ),
)
