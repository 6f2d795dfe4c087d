"""FTA Compliance Engine - Utilities Package"""

from fta_compliance.utils.decorators import (
    audit_log,
    measure_performance,
    performance_context,
)

__all__ = [
    'audit_log',
    'measure_performance',
    'performance_context',
]
