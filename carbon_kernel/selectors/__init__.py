"""Selectors for the gateway (read side)."""

from carbon_kernel.selectors.measurement_selector import MeasurementSelector

__all__ = ["MeasurementSelector"]
