"""Console presentation for the CLI (rich)."""
