"""Service layer for business logic separation."""

from .ecg import ECGStreamService, SessionAnalyzerService

__all__ = ['ECGStreamService', 'SessionAnalyzerService']
