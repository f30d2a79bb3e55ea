"""Command handlers for the MultiMoon CLI."""
