"""tests.integration package

Integration-level suites that drive the contentprobe FastAPI application
through its HTTP endpoints.  Run only these with `pytest -m integration`, or
skip them during quick unit cycles with `pytest -m "not integration"`.
"""
