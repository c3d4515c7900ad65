"""Kernel services (imperative shell over the database)."""
