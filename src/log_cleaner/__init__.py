"""Background service that deletes stale log files and relieves low disk space."""
