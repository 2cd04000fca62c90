"""
Configuration for the layout pipeline.

LayoutConfig gathers every caller-facing option. Callers coming from a
JSON-ish diagram model can use LayoutConfig.from_dict with the camelCase
option names (``startX``, ``levelSpacing``, ``smoothingMode`` ...).

Smoothing is configured either by a named mode or by explicit
``{alpha, maxDisplacement}`` values; both resolve to SmoothingOptions.
"""

import logging
from dataclasses import dataclass, field, fields
from typing import Any, Dict, Mapping, Optional, Union

logger = logging.getLogger(__name__)


class ConfigError(ValueError):
    """Raised when a layout option is invalid."""

    pass


# =============================================================================
# SMOOTHING MODES
# =============================================================================


@dataclass(frozen=True)
class SmoothingOptions:
    """
    How strongly a new layout is blended toward the previous one.

    Attributes:
        alpha: Blend factor in [0, 1]. 0 keeps the previous position,
            1 takes the new position unchanged.
        max_displacement: Cap on how far a node may move in one run, or None
            for no cap.
        mode: Name of the preset this came from ("custom" for explicit values).
    """

    alpha: float
    max_displacement: Optional[float] = None
    mode: str = "custom"


SMOOTHING_MODES: Dict[str, SmoothingOptions] = {
    # Live re-layout while the user edits: move little, cap hard
    "interactive": SmoothingOptions(alpha=0.3, max_displacement=100, mode="interactive"),
    # Before producing a static image: trust the new layout
    "export": SmoothingOptions(alpha=0.9, max_displacement=None, mode="export"),
    "auto": SmoothingOptions(alpha=0.5, max_displacement=150, mode="auto"),
}

STRATEGIES = ("hierarchical", "circular", "auto")


def resolve_smoothing(
    mode: Union[str, SmoothingOptions, Mapping[str, Any]],
) -> SmoothingOptions:
    """
    Turn a mode name, explicit mapping or SmoothingOptions into SmoothingOptions.

    Args:
        mode: "interactive", "export", "auto", a SmoothingOptions, or a mapping
            with ``alpha`` and optional ``maxDisplacement``/``max_displacement``.

    Returns:
        The resolved SmoothingOptions.

    Raises:
        ConfigError: For an unknown mode name or an alpha outside [0, 1].
    """
    if isinstance(mode, SmoothingOptions):
        options = mode
    elif isinstance(mode, str):
        if mode not in SMOOTHING_MODES:
            raise ConfigError(
                f"unknown smoothing mode {mode!r}; "
                f"expected one of {sorted(SMOOTHING_MODES)}"
            )
        options = SMOOTHING_MODES[mode]
    elif isinstance(mode, Mapping):
        if "alpha" not in mode:
            raise ConfigError("explicit smoothing options require 'alpha'")
        max_disp = mode.get("maxDisplacement", mode.get("max_displacement"))
        options = SmoothingOptions(
            alpha=float(mode["alpha"]),
            max_displacement=None if max_disp is None else float(max_disp),
        )
    else:
        raise ConfigError(f"invalid smoothing mode: {mode!r}")

    if not 0.0 <= options.alpha <= 1.0:
        raise ConfigError(f"smoothing alpha must be in [0, 1], got {options.alpha}")
    if options.max_displacement is not None and options.max_displacement < 0:
        raise ConfigError("smoothing maxDisplacement must not be negative")
    return options


# =============================================================================
# LAYOUT CONFIG
# =============================================================================

# Caller-facing option names -> LayoutConfig field names
_OPTION_ALIASES = {
    "startX": "start_x",
    "startY": "start_y",
    "levelSpacing": "level_spacing",
    "columnSpacing": "column_spacing",
    "padding": "padding",
    "maxIterations": "max_iterations",
    "gridCellSize": "grid_cell_size",
    "clearance": "clearance",
    "smoothingMode": "smoothing_mode",
    "strategy": "strategy",
    "circularMaxNodes": "circular_max_nodes",
    "anchorsPerSide": "anchors_per_side",
    "anchorMargin": "anchor_margin",
    "maxExpansions": "max_expansions",
    "settleAfterSmoothing": "settle_after_smoothing",
    "diagramId": "diagram_id",
}


@dataclass
class LayoutConfig:
    """
    Options for a layout run.

    Attributes:
        start_x: X of column 0.
        start_y: Y of level 0.
        level_spacing: Vertical distance between levels.
        column_spacing: Horizontal distance between adjacent columns.
        padding: Margin added around every node for collision tests.
        max_iterations: Iteration budget of the collision resolver.
        grid_cell_size: Cell size of the routing grid.
        clearance: Margin added around obstacles when routing.
        smoothing_mode: Mode name, explicit mapping or SmoothingOptions.
        strategy: "hierarchical", "circular" or "auto".
        circular_max_nodes: Largest graph "auto" lays out on a circle.
        anchors_per_side: Anchor points generated on each node side.
        anchor_margin: Fraction of a side kept free of anchors at each corner.
        max_expansions: A* node expansion budget per search attempt.
        settle_after_smoothing: Re-run collision resolution when smoothing
            leaves nodes overlapping.
        diagram_id: Default identity used for history and metrics.
    """

    start_x: float = 400.0
    start_y: float = 80.0
    level_spacing: float = 120.0
    column_spacing: float = 200.0
    padding: float = 16.0
    max_iterations: int = 50
    grid_cell_size: float = 20.0
    clearance: float = 16.0
    smoothing_mode: Union[str, SmoothingOptions, Mapping[str, Any]] = "auto"
    strategy: str = "hierarchical"
    circular_max_nodes: int = 6
    anchors_per_side: int = 3
    anchor_margin: float = 0.15
    max_expansions: int = 50000
    settle_after_smoothing: bool = True
    diagram_id: str = "default"
    smoothing: SmoothingOptions = field(init=False, repr=False)

    def __post_init__(self):
        self.validate()

    def validate(self) -> None:
        """
        Check option values and resolve the smoothing mode.

        Raises:
            ConfigError: If any option is out of range.
        """
        for name in ("level_spacing", "column_spacing", "grid_cell_size"):
            if getattr(self, name) <= 0:
                raise ConfigError(f"{name} must be positive")
        for name in ("padding", "clearance"):
            if getattr(self, name) < 0:
                raise ConfigError(f"{name} must not be negative")
        if self.max_iterations < 1:
            raise ConfigError("max_iterations must be at least 1")
        if self.max_expansions < 1:
            raise ConfigError("max_expansions must be at least 1")
        if self.anchors_per_side < 1:
            raise ConfigError("anchors_per_side must be at least 1")
        if not 0.0 <= self.anchor_margin < 0.5:
            raise ConfigError("anchor_margin must be in [0, 0.5)")
        if self.strategy not in STRATEGIES:
            raise ConfigError(
                f"strategy must be one of {STRATEGIES}, got {self.strategy!r}"
            )
        self.smoothing = resolve_smoothing(self.smoothing_mode)

    @classmethod
    def from_dict(cls, options: Optional[Mapping[str, Any]]) -> "LayoutConfig":
        """
        Build a config from caller options.

        Both camelCase option names and snake_case field names are accepted.
        Unknown keys are logged and ignored.

        Args:
            options: Mapping of option name to value, or None for defaults.

        Returns:
            A validated LayoutConfig.
        """
        if not options:
            return cls()

        field_names = {f.name for f in fields(cls) if f.init}
        kwargs: Dict[str, Any] = {}
        for key, value in options.items():
            name = _OPTION_ALIASES.get(key, key)
            if name not in field_names:
                logger.warning("Ignoring unknown layout option %r", key)
                continue
            kwargs[name] = value
        return cls(**kwargs)
