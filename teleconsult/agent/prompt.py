from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Mapping, Optional

from teleconsult.record.sections import HISTORY_SECTIONS


@dataclass(frozen=True)
class AgentRequest:
    patient_history_context: str
    transcript_segment: str
    is_partial: bool
    current_sections: Optional[Mapping[str, str]] = None
    active_section: Optional[str] = None


def _active_section_note(active_section: str) -> str:
    return (
        f'\nIMPORTANTE - Sección activa: "{active_section}".\n'
        "- El médico está llenando SOLO esta sección. Las \"propuestas\" deben ser únicamente para esta sección.\n"
        "- IGNORA en la transcripción: saludos iniciales, despedidas, frases de apertura genéricas "
        "(\"cuéntame qué lo trae\", \"qué lo trae el día de hoy\", \"¿en qué puedo ayudarle?\", "
        "\"buenos días/tardes\"), y cualquier diálogo que no aporte datos clínicos para esta sección.\n"
        "- El \"resumen\" debe ser SOLO lo relevante para la sección activa: información clínica o datos "
        "que el médico o el paciente hayan dado para esta parte de la historia. Si hasta ahora solo hay "
        "saludos y preguntas de apertura sin contenido clínico, devuelve resumen vacío o "
        "\"Aún no hay información clínica relevante para esta sección.\"\n"
    )


def build_prompt(request: AgentRequest) -> str:
    marker = "parcial" if request.is_partial else "segmento final"
    current = ""
    if request.current_sections:
        current = "Secciones ya propuestas/actuales:\n" + json.dumps(
            dict(request.current_sections), ensure_ascii=False
        )
    active_note = _active_section_note(request.active_section) if request.active_section else ""
    scope = (
        f'Solo incluye la sección "{request.active_section}".'
        if request.active_section
        else "Solo incluye secciones que puedas completar con la transcripción."
    )

    return (
        "Eres un asistente clínico. Contexto de historia previa del paciente:\n"
        f"{request.patient_history_context}\n\n"
        f"Transcripción de la consulta ({marker}):\n"
        f"{request.transcript_segment}\n\n"
        f"{current}\n"
        f"{active_note}\n"
        "Responde en JSON con exactamente dos claves:\n"
        "- \"resumen\": resumen breve solo de la información clínica relevante para la consulta "
        "(o para la sección activa si se indicó). No incluyas saludos ni preguntas genéricas de apertura.\n"
        "- \"propuestas\": array de { \"seccion\": \"nombreSeccion\", \"contenido\": \"texto\" }. "
        f"{scope} Nombres de sección válidos: {', '.join(HISTORY_SECTIONS)}."
    )
