"""Shared test fixtures and configuration."""

import contextlib
import logging
import math

import numpy as np
import pytest


def euclidean(a, b) -> float:
    """Euclidean distance between two equal-length tuples."""
    return math.dist(a, b)


@pytest.fixture
def distance_fn():
    """Caller-supplied distance over tuples."""
    return euclidean


@pytest.fixture
def triangle_points():
    """Three 2-D points: the origin and the two unit axis points."""
    return [(0.0, 0.0), (1.0, 0.0), (0.0, 1.0)]


@pytest.fixture
def random_points():
    """Reproducible cloud of 3-D points."""
    rng = np.random.default_rng(7)
    return rng.uniform(-10.0, 10.0, size=(200, 3))


@pytest.fixture(autouse=True)
def reset_logging():
    """Reset logging configuration between tests to avoid interference."""
    # Store original state
    original_handlers = logging.root.handlers[:]
    original_level = logging.root.level

    yield

    # Restore original state
    logging.root.handlers = original_handlers
    logging.root.level = original_level


@contextlib.contextmanager
def capture_logger(
    caplog: pytest.LogCaptureFixture, logger_name: str, level: int = logging.INFO
):
    logger = logging.getLogger(logger_name)
    with caplog.at_level(level, logger=logger_name):
        logger.addHandler(caplog.handler)
        try:
            yield
        finally:
            logger.removeHandler(caplog.handler)
