"""Network planning engine.

Warehouse capacity and transport facility-location optimization, lane cost
generation from city coordinates, and asynchronous job orchestration with
failure classification, retries and a circuit breaker.
"""

__version__ = "1.0.0"
