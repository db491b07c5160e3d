"""
Edge daemon package for the Kostal-to-InfluxDB pipeline.

Polls the XML measurement feed of a Kostal PIKO inverter over HTTP, derives
the grid/self-consumption power balance, and writes the results to InfluxDB
v2 and/or VictoriaMetrics.

CHANGELOG:
- 2026-10-19: Initial creation

TODO:
- None
"""
