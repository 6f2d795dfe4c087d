"""FTA Compliance Engine - Processing Package"""

from fta_compliance.processing.batch import BatchProcessor
from fta_compliance.processing.concurrent import ConcurrentChecker

__all__ = [
    'BatchProcessor',
    'ConcurrentChecker',
]
