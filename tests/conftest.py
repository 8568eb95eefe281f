from types import SimpleNamespace

import numpy as np
import pytest

import logs


def make_landmarks(points):
    return [SimpleNamespace(x=x, y=y, z=0.0) for x, y in points]


@pytest.fixture
def frame():
    rng = np.random.default_rng(0)
    return rng.integers(0, 255, size=(100, 100, 3), dtype=np.uint8)


@pytest.fixture(autouse=True)
def clear_logs():
    logs.logger.clear_logs()
    yield
    logs.logger.clear_logs()


@pytest.fixture
def landmarks():
    return make_landmarks
