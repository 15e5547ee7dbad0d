"""Tests for limit-aware annotation batching."""

import logging
import sys
from pathlib import Path

import pytest

# Add src directory to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from prdecorator.batching import GITHUB_UPLOAD_LIMIT, UploadLimit, batch_items
from prdecorator.errors import ConfigurationError


@pytest.mark.parametrize(
    "count, batch_size, total_cap, expected_sizes",
    [
        (0, 50, 1000, []),
        (1, 50, 1000, [1]),
        (50, 50, 1000, [50]),
        (120, 50, 1000, [50, 50, 20]),
        (1200, 1000, 1000, [1000]),
        (60, 50, 50, [50]),
        (7, 3, 5, [3, 2]),
    ],
)
def test_batch_sizes(count, batch_size, total_cap, expected_sizes):
    """Verify items are capped then split into full batches with a trailing remainder."""
    batches = batch_items(list(range(count)), UploadLimit(batch_size, total_cap))

    assert [len(batch) for batch in batches] == expected_sizes


def test_batches_preserve_order():
    """Verify concatenated batches equal the retained prefix of the input."""
    items = list(range(130))

    batches = batch_items(items, GITHUB_UPLOAD_LIMIT)

    assert [item for batch in batches for item in batch] == items


def test_dropping_over_cap_is_logged(caplog):
    """Verify a warning is emitted when items are dropped."""
    with caplog.at_level(logging.WARNING, logger="prdecorator.batching"):
        batch_items(list(range(12)), UploadLimit(5, 10))

    assert "Dropping annotations beyond the platform cap" in caplog.text


@pytest.mark.parametrize("batch_size, total_cap", [(0, 10), (10, 0), (-1, 5)])
def test_invalid_upload_limit(batch_size, total_cap):
    """Verify non-positive limits are rejected."""
    with pytest.raises(ConfigurationError):
        UploadLimit(batch_size, total_cap)
