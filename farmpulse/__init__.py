"""FarmPulse livestock telemetry ingestion, analysis and broadcast core."""

__version__ = "0.1.0"
