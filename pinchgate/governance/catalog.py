"""The default governance task catalog."""

from typing import List

from .base import GovernanceTask
from .tasks import (
    BrokenLinksTask,
    CommentSweepTask,
    ContentFreshnessTask,
    DraftNecromancerTask,
    SecurityScanTask,
    SemanticFreshnessTask,
    SeoHealthTask,
    SpacedResurfacingTask,
    TideReportTask,
)


def build_default_catalog() -> List[GovernanceTask]:
    """Return the built-in tasks in run order."""
    return [
        ContentFreshnessTask(),
        SemanticFreshnessTask(),
        SeoHealthTask(),
        CommentSweepTask(),
        BrokenLinksTask(),
        SecurityScanTask(),
        DraftNecromancerTask(),
        SpacedResurfacingTask(),
        TideReportTask(),
    ]
