"""
EDI Claim Submission Pipeline.

Durable job queue, insurer rail connectors, network isolation gateway and
status-polling scheduler for healthcare claim submission.
"""

__version__ = "0.1.0"
