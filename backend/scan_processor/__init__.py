"""
Submission processor — stages submission files through antivirus scanning.

Consumes submission-create and scan-completed events from Kafka, moves
files between the DMZ, clean and quarantine storage areas and records
the scan verdict through the Submission API.
"""

__version__ = "0.1.0"
