"""
Spa appointment scheduling core.

Assigns appointment slots to staff members subject to recurring weekly
availability and per-slot capacity, and drives the appointment lifecycle.
"""

__version__ = "1.0.0"
