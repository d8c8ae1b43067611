"""
Hostel ledger: room occupancy, library circulation and feedback triage
behind a JSON API.
"""

from .app import create_app
from .models import db

__all__ = ["create_app", "db"]
