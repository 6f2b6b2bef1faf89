"""Request middleware: logging, timing, rate limits, timeout sweep."""
