"""tests.unit.classification package

Unit suites for the classification sub-system (engine adapter, orchestrator,
value types).
"""
