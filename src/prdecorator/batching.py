"""Limit-aware batching of annotations before upload."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Sequence, TypeVar

from .errors import ConfigurationError

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class UploadLimit:
    """Per-target pair of (batch size, total annotation cap)."""

    batch_size: int
    total_cap: int

    def __post_init__(self) -> None:
        if self.batch_size <= 0 or self.total_cap <= 0:
            raise ConfigurationError(
                "Invalid upload limit: batch size and total cap must both be greater than 0 "
                f"(got batch_size={self.batch_size}, total_cap={self.total_cap})."
            )


GITHUB_UPLOAD_LIMIT = UploadLimit(batch_size=50, total_cap=1000)
BITBUCKET_SERVER_UPLOAD_LIMIT = UploadLimit(batch_size=1000, total_cap=1000)
BITBUCKET_CLOUD_UPLOAD_LIMIT = UploadLimit(batch_size=100, total_cap=1000)
GITLAB_UPLOAD_LIMIT = UploadLimit(batch_size=50, total_cap=50)
AZURE_DEVOPS_UPLOAD_LIMIT = UploadLimit(batch_size=50, total_cap=50)


def batch_items(items: Sequence[T], limit: UploadLimit) -> List[List[T]]:
    """Split ``items`` into upload batches honouring ``limit``.

    Items beyond ``limit.total_cap`` are dropped; the rest are partitioned in
    order into consecutive groups of at most ``limit.batch_size``. An empty
    input yields no batches.
    """
    retained = list(items[: limit.total_cap])
    dropped = len(items) - len(retained)
    if dropped > 0:
        logger.warning(
            "Dropping annotations beyond the platform cap",
            extra={"total_cap": limit.total_cap, "dropped": dropped},
        )

    return [
        retained[start : start + limit.batch_size]
        for start in range(0, len(retained), limit.batch_size)
    ]
