"""
TM1Rest Utils Package

- logging: handler setup and structured operation logging
"""

from .logging import JSONFormatter, SmartFormatter, log_tm1_operation, setup_logging

__all__ = [
    "JSONFormatter",
    "SmartFormatter",
    "log_tm1_operation",
    "setup_logging",
]
