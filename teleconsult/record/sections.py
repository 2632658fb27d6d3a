from __future__ import annotations

"""
Fixed catalog of clinical-record sections.

Design intent:
- Keep the section order stable: context -> reason -> subjective -> objective -> alerts -> diagnoses -> plan.
- Gate every agent proposal on catalog membership before it reaches a room.
"""

from typing import Iterable

from teleconsult.internal_core.contracts import SectionProposal

HISTORY_SECTIONS: tuple[str, ...] = (
    "informacionGeneral",
    "motivoAtencion",
    "revisionSistemas",
    "antecedentes",
    "examenFisico",
    "resultadosParaclinicos",
    "alertasAlergias",
    "diagnosticos",
    "analisisPlan",
    "recomendaciones",
)

SECTION_ACTIONS: tuple[str, ...] = ("aceptada", "rechazada", "editada")

_SECTION_SET: frozenset[str] = frozenset(HISTORY_SECTIONS)


def is_valid_section(name: object) -> bool:
    return isinstance(name, str) and name in _SECTION_SET


def filter_proposals(proposals: Iterable[SectionProposal]) -> list[SectionProposal]:
    return [item for item in proposals if is_valid_section(item.section)]
