"""Build, publish and deploy a containerized service, then report the outcome."""

__version__ = "0.1.0"
