"""
Core Infrastructure for reader-speech.

    - config.py: YAML settings loading and validation
    - logging/: Structured logging with numeric levels
    - metrics.py: Prometheus metrics collection
"""
