"""Domain models and error types shared by every service."""
