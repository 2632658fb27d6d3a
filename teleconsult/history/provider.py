from __future__ import annotations

"""
Patient-history lookup used as agent context.

Design intent:
- Keyed, read-only reference records with a generic fallback for unknown ids.
- Keep the provider swappable so a real EHR client can replace the mock.
"""

from abc import ABC, abstractmethod

from teleconsult.internal_core.contracts import PatientHistorySummary

FALLBACK_KEY = "default"

_MOCK_HISTORIES: dict[str, PatientHistorySummary] = {
    "1": PatientHistorySummary(
        patient_id="1",
        summary=(
            "Paciente de 45 años, hipertensión en control con enalapril 10 mg. Última consulta por "
            "cefalea tensional. Sin alergias medicamentosas conocidas."
        ),
        last_visit_date="2024-01-15",
        relevant_background=["HTA", "Dislipidemia"],
        current_medication=["Enalapril 10 mg 1x día", "Atorvastatina 20 mg nocturna"],
    ),
    "2": PatientHistorySummary(
        patient_id="2",
        summary=(
            "Paciente de 32 años, asma leve intermitente. Alergia a penicilina. Última consulta por "
            "control de asma, bien controlada."
        ),
        last_visit_date="2024-02-01",
        relevant_background=["Asma", "Rinitis alérgica"],
        current_medication=["Salbutamol inhalador rescate", "Montelukast 10 mg nocturno"],
    ),
    "695bd5e7e2a3a01d24f01186": PatientHistorySummary(
        patient_id="695bd5e7e2a3a01d24f01186",
        summary=(
            "Paciente en seguimiento. Historia disponible para contexto del agente. Última valoración "
            "según registro."
        ),
        last_visit_date="2024-02-01",
    ),
    FALLBACK_KEY: PatientHistorySummary(
        patient_id=FALLBACK_KEY,
        summary="Paciente sin historia previa registrada en el sistema. Considerar anamnesis completa.",
    ),
}


class PatientHistoryProvider(ABC):
    @abstractmethod
    def get(self, patient_id: str) -> PatientHistorySummary: ...


class MockPatientHistoryProvider(PatientHistoryProvider):
    def __init__(self, records: dict[str, PatientHistorySummary] | None = None) -> None:
        self._records = dict(_MOCK_HISTORIES if records is None else records)

    def get(self, patient_id: str) -> PatientHistorySummary:
        record = self._records.get(patient_id)
        if record is not None and patient_id != FALLBACK_KEY:
            return record.model_copy(deep=True)
        fallback = self._records.get(FALLBACK_KEY) or _MOCK_HISTORIES[FALLBACK_KEY]
        return fallback.model_copy(
            deep=True,
            update={"patient_id": patient_id, "relevant_background": [], "current_medication": []},
        )


def build_history_context(history: PatientHistorySummary) -> str:
    lines = [
        history.summary,
        f"Última consulta: {history.last_visit_date}" if history.last_visit_date else "",
        ", ".join(history.relevant_background),
        ", ".join(history.current_medication),
    ]
    return "\n".join(line for line in lines if line)
