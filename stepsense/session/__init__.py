"""
Session accounting and the persistence store contract.
"""

from .accountant import SessionAccountant, SessionStatus, FlushResult, StepNotifier
from .store import StepStore, InMemoryStepStore, today_iso

__all__ = [
    'SessionAccountant',
    'SessionStatus',
    'FlushResult',
    'StepNotifier',
    'StepStore',
    'InMemoryStepStore',
    'today_iso',
]
