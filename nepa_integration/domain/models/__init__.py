"""Domain Models: value objects, configuration records and error types."""
