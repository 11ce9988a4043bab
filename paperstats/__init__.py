"""Past-paper performance analytics and gamification API."""

__version__ = "1.0.0"
