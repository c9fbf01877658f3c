"""
helm-reconciler turns a chart (templates and a values tree) into running
cluster resources and keeps an auditable history of every release.
"""

__all__ = [
    "chart",
    "template",
    "plan",
    "reconciler",
    "rollback",
    "orchestrator",
    "store",
    "cluster",
    "exceptions",
    # Note this is exposed for CLI documentation, not to be used as a library
    "tool",
]
