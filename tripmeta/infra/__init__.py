"""Infrastructure: telemetry, runtime and health."""
