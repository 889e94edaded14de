"""Common infrastructure utilities."""
