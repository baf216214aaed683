"""Submission API access."""

from scan_processor.submission.client import ReviewTypeCache, SubmissionClient

__all__ = ["ReviewTypeCache", "SubmissionClient"]
