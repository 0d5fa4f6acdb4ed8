"""Agent core - configuration and logging."""
