"""backupctl - Scheduled database and cache backups with retention."""

__version__ = "1.0.0"
