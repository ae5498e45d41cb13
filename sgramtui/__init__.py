"""Terminal viewer for sgram."""
