"""Real-time fault detection and health scoring for monitored digital-twin entities.

This package contains the rule engine, the stores it maintains and the domain
models they exchange, isolated from transport and persistence concerns.
"""
