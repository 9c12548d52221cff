"""vibe-agent: dependency-graph task orchestration over pluggable model-backed actors."""

__version__ = "0.1.0"
