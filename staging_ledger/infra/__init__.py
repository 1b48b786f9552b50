"""Infrastructure helpers: logging, metrics sinks and the SQLite engine."""
