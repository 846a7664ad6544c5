"""HTTP surface of the view sync service."""
