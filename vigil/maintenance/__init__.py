"""Retention sweeps and periodic housekeeping."""
