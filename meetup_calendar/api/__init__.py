"""
Meetup Calendar API module.

Provides the public calendar endpoints and the admin series routes.
"""

from meetup_calendar.api.main import app, run_server

__all__ = ["app", "run_server"]
