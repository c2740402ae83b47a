"""Quote-to-booking conversion and cancellation-refund engine."""

__version__ = "0.1.0"
