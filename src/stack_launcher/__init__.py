"""Local supervisor for the database and API services of a desktop session."""

__version__ = "1.0.0"
