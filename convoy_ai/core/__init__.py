"""Cross-cutting infrastructure: logging setup and telemetry."""
