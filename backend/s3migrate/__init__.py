"""Local-to-S3 storage migration for Nextcloud data directories."""

__version__ = "1.0.0"
