"""
Meetup Calendar: recurring meetup series expanded into calendar instances on read.
"""

__version__ = "0.1.0"
