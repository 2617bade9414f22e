"""
Incident Desk Jobs Module

Contains background jobs for the Incident Desk application.
"""

from incident_desk.jobs.sla_monitor import SlaMonitor

__all__ = [
    "SlaMonitor",
]
