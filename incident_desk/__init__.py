"""Incident Desk: SLA monitoring and breach notification for incident tickets."""

__version__ = "1.0.0"
