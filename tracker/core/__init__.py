"""Configuration, logging, errors and database plumbing."""
