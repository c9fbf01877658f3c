"""Command line interface for helm-reconciler."""
