"""Cross-cutting infrastructure: configuration, errors, logging and locks."""
