"""
Web App Pinger

A job-processing host: layered configuration, an explicit composition root,
an HTTP control surface and a background job server with at-least-once
execution, recurring triggers and observability.
"""

__version__ = "1.0.0"
