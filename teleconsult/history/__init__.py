from .provider import MockPatientHistoryProvider, PatientHistoryProvider, build_history_context

__all__ = ["MockPatientHistoryProvider", "PatientHistoryProvider", "build_history_context"]
