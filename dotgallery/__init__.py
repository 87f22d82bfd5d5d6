"""Live gallery of rendered pipeline-graph diagrams."""

__version__ = "0.1.0"
