"""learntrack - tenant-scoped learner progress aggregation service."""

__version__ = "0.1.0"
