"""sitestats: visitor, session and page view tracking with dashboard analytics."""

__version__ = "0.1.0"
