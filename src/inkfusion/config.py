"""
Configuration management for ink fusion.

Loads YAML configuration with defaults for every analysis stage. All
empirically tuned thresholds live here so they can be overridden without
touching the algorithms.
"""

import os
from dataclasses import asdict, dataclass, field

import yaml


@dataclass
class ShapeConfig:
    """Configuration for single- and multi-stroke shape classification."""
    closure_min_gap: float = 20.0
    closure_segment_factor: float = 2.0
    corner_angle_threshold: float = 0.5  # radians
    corner_sample_divisor: int = 50
    corner_min_spacing: float = 10.0
    min_line_length: float = 10.0
    accept_confidence: float = 0.6
    multi_stroke_distance: float = 20.0  # pixels between bbox centers
    multi_stroke_confidence: float = 0.6


@dataclass
class ContourConfig:
    """Configuration for raster contour extraction."""
    edge_threshold: float = 50.0
    simplify_epsilon: float = 0.005  # normalized canvas units
    min_region_size: int = 5


@dataclass
class AssociationConfig:
    """Configuration for stroke lookup around a target point."""
    search_radius: float = 0.15
    aggressive: bool = False
    max_expansions: int = 3
    pad_by_stroke_size: bool = False
    default_stroke_size: float = 4.0
    region_link_ratio: float = 0.05
    region_padding_ratio: float = 0.1
    region_min_padding: int = 5


@dataclass
class FusionConfig:
    """Configuration for cross-source deduplication and fallback boxes."""
    name_match_iou: float = 0.2
    name_match_distance: float = 0.15
    overlap_iou: float = 0.5
    match_distance: float = 0.15
    best_match_threshold: float = 0.3
    best_match_distance_weight: float = 0.6
    best_match_name_weight: float = 0.4
    default_position: list = field(default_factory=lambda: [0.5, 0.5])
    source_priority: dict = field(default_factory=lambda: {
        "stroke-geometry": 4,
        "ml-object": 3,
        "ml-face": 3,
        "sketch-cnn": 2,
        "vision-api": 1,
        "fallback": 0,
    })
    fallback_sizes: dict = field(default_factory=lambda: {
        "face": [0.15, 0.15],
        "head": [0.15, 0.15],
        "body": [0.2, 0.4],
        "person": [0.2, 0.4],
        "eye": [0.05, 0.03],
        "nose": [0.05, 0.08],
        "mouth": [0.08, 0.04],
        "hair": [0.2, 0.1],
    })
    default_fallback_size: list = field(default_factory=lambda: [0.1, 0.1])


@dataclass
class HierarchyConfig:
    """Configuration for containment hierarchy construction."""
    child_area_ratio: float = 0.9


@dataclass
class TracingConfig:
    """Configuration for runtime tracing."""
    enabled: bool = False
    level: str = "INFO"
    file_path: str = None
    json_output: bool = False


@dataclass
class DebugConfig:
    """Configuration for debug artifact generation."""
    enabled: bool = False
    max_edge_scale: int = 1600


@dataclass
class AnalysisConfig:
    """Complete analysis configuration."""
    shape: ShapeConfig = field(default_factory=ShapeConfig)
    contour: ContourConfig = field(default_factory=ContourConfig)
    association: AssociationConfig = field(default_factory=AssociationConfig)
    fusion: FusionConfig = field(default_factory=FusionConfig)
    hierarchy: HierarchyConfig = field(default_factory=HierarchyConfig)
    tracing: TracingConfig = field(default_factory=TracingConfig)
    debug: DebugConfig = field(default_factory=DebugConfig)
    contours_enabled: bool = True


SECTIONS = ("shape", "contour", "association", "fusion", "hierarchy", "tracing", "debug")


def load_config(config_path=None):
    """
    Load configuration from YAML file.

    Falls back to defaults for any missing values.
    """
    config = AnalysisConfig()

    if config_path and os.path.exists(config_path):
        with open(config_path, "r", encoding="utf-8") as f:
            yaml_data = yaml.safe_load(f) or {}

        config = _merge_config(config, yaml_data)

    return config


def _merge_config(config, yaml_data):
    """Merge YAML data into config dataclass, ignoring unknown keys."""
    for section_name in SECTIONS:
        section_data = yaml_data.get(section_name)
        if not section_data:
            continue
        section = getattr(config, section_name)
        for key, value in section_data.items():
            if hasattr(section, key):
                setattr(section, key, value)

    if "contours_enabled" in yaml_data:
        config.contours_enabled = bool(yaml_data["contours_enabled"])

    return config


def save_default_config(path):
    """Save default configuration to YAML file for reference."""
    config = AnalysisConfig()

    yaml_data = {name: asdict(getattr(config, name)) for name in SECTIONS}
    yaml_data["tracing"].pop("file_path", None)
    yaml_data["contours_enabled"] = config.contours_enabled

    with open(path, "w", encoding="utf-8") as f:
        yaml.dump(yaml_data, f, default_flow_style=False, sort_keys=False)
