"""
carbon_ingestion -- Measurement ingestion for the carbon data-collection gateway.

Accepts measurements from four channels (pull-API, IoT push, manual entry,
file import), normalizes them to canonical category fields and drives them
through persistence, cumulative tracking, calculation and event publication.

Architecture:
    carbon_ingestion/ sits on top of carbon_kernel/. Nothing in the kernel
    imports from ingestion.
"""
