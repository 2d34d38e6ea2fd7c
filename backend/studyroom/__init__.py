"""Study Room tutoring backend: session scheduling, conflict validation and billing state."""

__version__ = "0.1.0"
