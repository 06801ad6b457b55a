"""Configuration management for phylactery.

This module contains all configurable constants for connection discovery.
Magic numbers are documented here rather than scattered throughout the codebase.
"""

import os
from pathlib import Path

from pydantic import BaseModel, Field, ValidationError


class ConfigurationError(Exception):
    """Raised when configuration is missing or invalid."""

    pass


# =============================================================================
# Lexical Similarity (TF-IDF)
# =============================================================================

# Minimum cosine similarity for a lexical (semantic) connection.
# TF-IDF cosine scores between short notes rarely exceed 0.6 unless the notes
# share most of their vocabulary. 0.3 keeps topical overlap while dropping
# pairs that only share one incidental term.
SEMANTIC_SIMILARITY_THRESHOLD = 0.3

# Tokens shorter than this are dropped before vectorization.
MIN_TOKEN_LENGTH = 2

# Common English words that carry no topical signal.
STOP_WORDS = frozenset({
    "a", "an", "and", "are", "as", "at", "be", "by", "for", "from",
    "has", "he", "in", "is", "it", "its", "of", "on", "that", "the",
    "to", "was", "will", "with", "this", "but", "they", "have",
    "had", "what", "when", "where", "who", "which", "why", "how",
})


# =============================================================================
# Temporal Proximity
# =============================================================================

# Maximum gap between two nodes' timestamps for a temporal connection (1 hour).
TEMPORAL_WINDOW_SECONDS = 60 * 60

# Exponential decay rate applied to gap / window.
# e^(-3x) gives ~1.0 at a zero gap and ~0.05 at the window edge.
TEMPORAL_DECAY_RATE = 3.0

# Content-type weights for temporal connections.
# Notes written back to back are usually about the same thing; images and
# saved web pages are more often captured in bulk.
TYPE_WEIGHTS: dict[str, float] = {
    "note": 1.0,
    "image": 0.8,
    "webpage": 0.6,
}


# =============================================================================
# Score Fusion
# =============================================================================

# Weights for combining semantic and temporal scores when both are present.
SEMANTIC_WEIGHT = 0.7
TEMPORAL_WEIGHT = 0.3

# A connection is "strong" when its confidence is strictly above this value.
STRONG_CONNECTION_THRESHOLD = 0.7

# Confidence assigned to connections created by hand.
MANUAL_CONNECTION_CONFIDENCE = 1.0


# =============================================================================
# Discovery Worker
# =============================================================================

# Analysis results are reused for this long before being recomputed (5 minutes).
CACHE_TTL_SECONDS = 5 * 60

# Hard wall-clock bound for a single node analysis.
ANALYSIS_TIMEOUT_SECONDS = 5.0

# Queue priorities (higher runs sooner).
DEFAULT_PRIORITY = 0
UPDATED_PRIORITY = 5
INGESTED_PRIORITY = 10

# The cooperative analysis yields to the event loop after this many
# candidate comparisons so a timeout can cancel it.
COOPERATIVE_YIELD_EVERY = 50


# =============================================================================
# Settings File
# =============================================================================

CONFIG_FILENAME = ".phylactery.yaml"

# Maximum directory traversal depth when searching for a settings file.
MAX_CONFIG_SEARCH_DEPTH = 10


class DiscoverySettings(BaseModel):
    """Tunables a deployment may override from a YAML settings file."""

    semantic_threshold: float = Field(default=SEMANTIC_SIMILARITY_THRESHOLD, ge=0.0, le=1.0)
    temporal_window_seconds: float = Field(default=TEMPORAL_WINDOW_SECONDS, gt=0)
    cache_ttl_seconds: float = Field(default=CACHE_TTL_SECONDS, ge=0)
    analysis_timeout_seconds: float = Field(default=ANALYSIS_TIMEOUT_SECONDS, gt=0)
    yield_every: int = Field(default=COOPERATIVE_YIELD_EVERY, ge=1)


def _discover_config_file(start_dir: Path | None = None, max_depth: int = MAX_CONFIG_SEARCH_DEPTH) -> Path | None:
    """Walk up from start_dir looking for a settings file.

    Args:
        start_dir: Directory to start from (defaults to cwd)
        max_depth: Maximum directories to traverse up

    Returns:
        Path to the settings file if found, None otherwise.
    """
    current = Path(start_dir or os.getcwd()).resolve()

    for _ in range(max_depth):
        candidate = current / CONFIG_FILENAME
        if candidate.is_file():
            return candidate

        parent = current.parent
        if parent == current:  # Reached filesystem root
            break
        current = parent

    return None


def get_config_path(path: str | Path | None = None) -> Path | None:
    """Resolve which settings file to load.

    Discovery order:
    1. Explicit path argument
    2. PHYLACTERY_CONFIG environment variable
    3. Walk up from cwd looking for .phylactery.yaml

    Raises:
        ConfigurationError: If an explicitly requested file does not exist.
    """
    explicit = path or os.environ.get("PHYLACTERY_CONFIG")
    if explicit:
        config_path = Path(explicit)
        if not config_path.is_file():
            raise ConfigurationError(f"Settings file not found: {config_path}")
        return config_path

    return _discover_config_file()


def load_settings(path: str | Path | None = None) -> DiscoverySettings:
    """Load discovery settings, falling back to defaults when no file exists.

    The settings file is YAML; keys match DiscoverySettings fields, and
    ``temporal_window_minutes`` is accepted as a convenience.

    Raises:
        ConfigurationError: If the file cannot be read or holds invalid values.
    """
    import yaml

    config_path = get_config_path(path)
    if config_path is None:
        return DiscoverySettings()

    try:
        data = yaml.safe_load(config_path.read_text(encoding="utf-8")) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ConfigurationError(f"Could not read settings file {config_path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigurationError(f"Settings file {config_path} must contain a mapping")

    if "temporal_window_minutes" in data:
        minutes = data.pop("temporal_window_minutes")
        try:
            data["temporal_window_seconds"] = float(minutes) * 60
        except (TypeError, ValueError) as e:
            raise ConfigurationError(
                f"Invalid settings in {config_path}: temporal_window_minutes must be a number, got {minutes!r}"
            ) from e

    try:
        return DiscoverySettings.model_validate(data)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid settings in {config_path}: {e}") from e
