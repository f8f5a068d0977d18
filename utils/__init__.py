"""
utils package: Process-wide helpers (environment, logging, errors, time zones,
rate limiting, message formatting).

Submodules are imported directly (``from utils.logging import logger``).
"""
