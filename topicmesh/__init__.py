"""Declarative domain ownership, reconciliation and telemetry for Kafka topics."""

__version__ = "1.0.0"
