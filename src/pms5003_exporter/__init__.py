"""Prometheus exporter for the PMS5003 particulate matter sensor."""

__version__ = "0.1.0"
