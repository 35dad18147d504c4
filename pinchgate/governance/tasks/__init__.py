"""Built-in governance tasks."""

from .broken_links import BrokenLinksTask
from .comment_sweep import CommentSweepTask
from .content_freshness import ContentFreshnessTask
from .draft_necromancer import DraftNecromancerTask
from .security_scan import SecurityScanTask
from .semantic_freshness import SemanticFreshnessTask
from .seo_health import SeoHealthTask
from .spaced_resurfacing import SpacedResurfacingTask
from .tide_report import TideReportTask

__all__ = [
    "BrokenLinksTask",
    "CommentSweepTask",
    "ContentFreshnessTask",
    "DraftNecromancerTask",
    "SecurityScanTask",
    "SemanticFreshnessTask",
    "SeoHealthTask",
    "SpacedResurfacingTask",
    "TideReportTask",
]
