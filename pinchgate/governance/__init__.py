"""Scheduled governance analysis: tasks, runner and findings delivery."""

from .base import GovernanceTask, TaskContext, TaskDescriptor, TaskOutcome, TaskReport, TaskRunStatus
from .catalog import build_default_catalog
from .content import ContentItem, ContentStore, LinkRef, NullContentStore
from .delivery import FindingsDelivery
from .runner import GovernanceRunner

__all__ = [
    "ContentItem",
    "ContentStore",
    "FindingsDelivery",
    "GovernanceRunner",
    "GovernanceTask",
    "LinkRef",
    "NullContentStore",
    "TaskContext",
    "TaskDescriptor",
    "TaskOutcome",
    "TaskReport",
    "TaskRunStatus",
    "build_default_catalog",
]
