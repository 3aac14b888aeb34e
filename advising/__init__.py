"""Student advising dashboard API."""
