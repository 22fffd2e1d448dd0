"""Layout configuration.

Defaults match a stock d3-force binding diagram: 100-unit links, a -100
many-body charge on an 800x600 canvas, cooling over roughly 300 steps.
"""

from __future__ import annotations

from dataclasses import dataclass

# ─── Defaults ─────────────────────────────────────────────────────────────────

CANVAS_WIDTH: float = 800.0
CANVAS_HEIGHT: float = 600.0

LINK_DISTANCE: float = 100.0
CHARGE_STRENGTH: float = -100.0  # negative = repulsive
CENTER_STRENGTH: float = 0.1  # fraction of the centroid offset removed per step
THETA: float = 0.9  # Barnes–Hut opening criterion
DISTANCE_MIN2: float = 1.0  # lower clamp on squared distance in many-body force

ALPHA: float = 1.0
ALPHA_MIN: float = 0.001
ALPHA_DECAY: float = 1.0 - ALPHA_MIN ** (1.0 / 300.0)
ALPHA_TARGET: float = 0.0
VELOCITY_DECAY: float = 0.6  # fraction of velocity retained per step
REHEAT_ALPHA: float = 0.3

INITIAL_RADIUS: float = 50.0
MAX_SETTLE_STEPS: int = 1000


@dataclass
class LayoutConfig:
    """Parameters for ``LayoutEngine``.

    ``seed`` makes initial placement reproducible; ``None`` draws a fresh seed.
    """

    width: float = CANVAS_WIDTH
    height: float = CANVAS_HEIGHT

    # Forces
    link_distance: float = LINK_DISTANCE
    charge_strength: float = CHARGE_STRENGTH
    center_strength: float = CENTER_STRENGTH
    theta: float = THETA
    distance_min2: float = DISTANCE_MIN2

    # Cooling
    alpha: float = ALPHA
    alpha_min: float = ALPHA_MIN
    alpha_decay: float = ALPHA_DECAY
    alpha_target: float = ALPHA_TARGET
    velocity_decay: float = VELOCITY_DECAY
    reheat_alpha: float = REHEAT_ALPHA

    # Placement
    initial_radius: float = INITIAL_RADIUS
    seed: int | None = None

    def __post_init__(self) -> None:
        if self.width <= 0 or self.height <= 0:
            raise ValueError(f"canvas must have positive size, got {self.width}x{self.height}")
        if not 0.0 <= self.theta <= 1.0:
            raise ValueError(f"theta must lie in [0, 1], got {self.theta}")
        if not 0.0 < self.alpha_decay < 1.0:
            raise ValueError(f"alpha_decay must lie in (0, 1), got {self.alpha_decay}")
        if not 0.0 <= self.velocity_decay < 1.0:
            raise ValueError(f"velocity_decay must lie in [0, 1), got {self.velocity_decay}")
        if not 0.0 <= self.center_strength <= 1.0:
            raise ValueError(f"center_strength must lie in [0, 1], got {self.center_strength}")
        if self.alpha_min <= 0.0:
            raise ValueError(f"alpha_min must be positive, got {self.alpha_min}")
        if self.reheat_alpha <= self.alpha_min:
            raise ValueError(f"reheat_alpha must exceed alpha_min, got {self.reheat_alpha}")
        if self.link_distance <= 0.0:
            raise ValueError(f"link_distance must be positive, got {self.link_distance}")
        if self.distance_min2 <= 0.0:
            raise ValueError(f"distance_min2 must be positive, got {self.distance_min2}")
        if self.initial_radius <= 0.0:
            raise ValueError(f"initial_radius must be positive, got {self.initial_radius}")

    @property
    def center(self) -> tuple[float, float]:
        """Canvas center the centering force pulls toward."""
        return (self.width / 2.0, self.height / 2.0)
