"""Domain modules for the Hermes team assistant."""
