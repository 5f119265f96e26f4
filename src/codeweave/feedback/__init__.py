"""Human feedback collection."""

from codeweave.feedback.collector import FeedbackCollector

__all__ = ["FeedbackCollector"]
