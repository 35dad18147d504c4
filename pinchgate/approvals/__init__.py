"""Human-in-the-loop approval queue for sensitive abilities."""

from .queue import ApprovalQueue, new_queue_id

__all__ = ["ApprovalQueue", "new_queue_id"]
