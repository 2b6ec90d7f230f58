"""envctl - shared, incrementally synchronized environment variables for shell sessions."""

__version__ = "0.1.0"
