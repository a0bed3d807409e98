"""Filesystem scanning: enumeration, filtering, checksums and the scan pipeline."""
