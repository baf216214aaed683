"""Submission lifecycle workflows."""

from scan_processor.services.processor import ProcessorService

__all__ = ["ProcessorService"]
