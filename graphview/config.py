"""
Layout and view configuration
=============================
Central registry for the physical constants of the layout engine and for
the constants of the interactive view.

Both configs are frozen dataclasses that validate themselves on
construction, so a bad value fails before any simulation is started.

Exports:
    LayoutConfig, ViewConfig: the config types.
    DEFAULT_LAYOUT, DEFAULT_VIEW: default instances.
"""
from __future__ import annotations

import math
from dataclasses import dataclass, field

from .errors import ForceConfigError

ALPHA_MIN = 0.001


def _default_alpha_decay() -> float:
    # reaches ALPHA_MIN from 1.0 in ~300 ticks
    return 1.0 - ALPHA_MIN ** (1.0 / 300)


def _require(cond: bool, message: str) -> None:
    if not cond:
        raise ForceConfigError(message)


@dataclass(frozen=True)
class LayoutConfig:
    # link force
    link_distance: float = 180.0

    # many-body force
    charge_strength: float = -1500.0
    charge_distance_min: float = 1.0
    charge_distance_max: float = math.inf
    theta: float = 0.9
    barnes_hut_threshold: int = 200

    # centering force
    center_strength: float = 1.0

    # collision force
    collision_radius: float = 80.0
    collision_strength: float = 1.0
    collision_iterations: int = 1

    # integrator
    alpha: float = 1.0
    alpha_min: float = ALPHA_MIN
    alpha_decay: float = field(default_factory=_default_alpha_decay)
    alpha_target: float = 0.0
    drag_alpha_target: float = 0.3
    velocity_decay: float = 0.4
    min_distance: float = 1e-6

    def __post_init__(self):
        _require(self.link_distance > 0, f"link_distance must be > 0, got {self.link_distance}")
        _require(math.isfinite(self.charge_strength), "charge_strength must be finite")
        _require(self.charge_distance_min > 0, "charge_distance_min must be > 0")
        _require(self.charge_distance_max >= self.charge_distance_min,
                 "charge_distance_max must be >= charge_distance_min")
        _require(self.theta >= 0, f"theta must be >= 0, got {self.theta}")
        _require(self.barnes_hut_threshold >= 1, "barnes_hut_threshold must be >= 1")
        _require(0 <= self.center_strength <= 1, "center_strength must be in [0, 1]")
        _require(self.collision_radius > 0, f"collision_radius must be > 0, got {self.collision_radius}")
        _require(0 <= self.collision_strength <= 1, "collision_strength must be in [0, 1]")
        _require(self.collision_iterations >= 1, "collision_iterations must be >= 1")
        _require(0 <= self.alpha <= 1, f"alpha must be in [0, 1], got {self.alpha}")
        _require(0 < self.alpha_min < 1, f"alpha_min must be in (0, 1), got {self.alpha_min}")
        _require(0 < self.alpha_decay < 1, f"alpha_decay must be in (0, 1), got {self.alpha_decay}")
        _require(0 <= self.alpha_target <= 1, "alpha_target must be in [0, 1]")
        _require(0 <= self.drag_alpha_target <= 1, "drag_alpha_target must be in [0, 1]")
        _require(0 <= self.velocity_decay <= 1, "velocity_decay must be in [0, 1]")
        _require(self.min_distance > 0, "min_distance must be > 0")


@dataclass(frozen=True)
class ViewConfig:
    scale_extent: tuple[float, float] = (0.1, 4.0)
    click_threshold: float = 3.0          # px
    wheel_zoom_factor: float = 1.2
    frame_interval_ms: int = 16
    node_radius: float = 38.0             # world units
    label_offset: float = 55.0
    dim_opacity: float = 0.2
    link_opacity: float = 0.6
    link_color: str = "#333333"
    selection_color: str = "#d92525"
    background: str = "#0a0a0a"

    def __post_init__(self):
        lo, hi = self.scale_extent
        _require(0 < lo <= hi, f"scale_extent must satisfy 0 < min <= max, got {self.scale_extent}")
        _require(self.click_threshold >= 0, "click_threshold must be >= 0")
        _require(self.wheel_zoom_factor > 1, "wheel_zoom_factor must be > 1")
        _require(self.frame_interval_ms >= 0, "frame_interval_ms must be >= 0")
        _require(self.node_radius > 0, "node_radius must be > 0")
        _require(0 <= self.dim_opacity <= 1, "dim_opacity must be in [0, 1]")
        _require(0 <= self.link_opacity <= 1, "link_opacity must be in [0, 1]")


DEFAULT_LAYOUT = LayoutConfig()
DEFAULT_VIEW = ViewConfig()
