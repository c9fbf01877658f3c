"""Utilities for tracing the stages of a release pipeline."""

import contextvars
from contextlib import contextmanager
import logging
from time import perf_counter
from typing import Generator


_LOGGER = logging.getLogger(__name__)

# No public API
__all__: list[str] = []


trace: contextvars.ContextVar[list[str]] = contextvars.ContextVar("trace")


@contextmanager
def trace_context(stage: str, release: str | None = None) -> Generator[None, None, None]:
    """Log the entry, exit and duration of a pipeline stage.

    Stages nest, so a render inside an upgrade is logged as
    `upgrade(default/app) > render`.
    """
    name = f"{stage}({release})" if release else stage
    stack = trace.get([])
    token = trace.set(stack + [name])
    label = " > ".join(stack + [name])
    start = perf_counter()
    _LOGGER.debug("[Trace] > %s", label)
    try:
        yield
    finally:
        trace.reset(token)
        _LOGGER.debug("[Trace] < %s (%0.2fs)", label, perf_counter() - start)
