"""Infrastructure — database sessions, logging setup, background scheduler."""
