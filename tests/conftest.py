"""
Shared pytest fixtures and configuration for all tests
"""

import numpy as np
import pytest

from tensor_codecs.random_arrays import RandomArrayGenerator


@pytest.fixture
def rng():
    """
    Fixture providing a seeded numpy generator
    """
    return np.random.default_rng(1234)


@pytest.fixture
def generator():
    """
    Fixture providing a seeded RandomArrayGenerator
    """
    return RandomArrayGenerator(seed=12345)


@pytest.fixture
def sample_row():
    """
    Fixture providing the 8-feature row used in the sparsity examples
    """
    return np.array([5, -1, 3, 0, -9, 2, 4, -8], dtype=np.float32)


@pytest.fixture
def temp_config_file(tmp_path, monkeypatch):
    """
    Fixture to use a temporary config file instead of the real one
    """
    temp_config = tmp_path / "test_config.json"
    monkeypatch.setattr('tensor_codecs.config.CONFIG_FILE', temp_config)
    return temp_config


# Pytest configuration
def pytest_configure(config):
    """
    Configure pytest with custom markers
    """
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
