"""Class scheduling, recurrence and attendance tracking for live online classes."""

__version__ = "0.1.0"
