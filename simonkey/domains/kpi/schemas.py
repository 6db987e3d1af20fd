# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""KPI snapshot schemas.

Snapshots are stored with the field names the web dashboard reads
(``scoreCuaderno``, ``tiempoEstudioLocal``...). Models use snake_case
attributes aliased to those wire names; to_document() produces the stored
mapping.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from simonkey.utils.datetime import WEEKDAY_KEYS


class _WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    def to_document(self) -> dict[str, Any]:
        """Dump with wire aliases, keeping datetimes as datetime objects."""
        return self.model_dump(by_alias=True)


def _empty_week() -> dict[str, int]:
    return {day: 0 for day in WEEKDAY_KEYS}


class NotebookKpis(_WireModel):
    """Per-notebook figures of a student's dashboard."""

    notebook_id: str = Field(alias="cuadernoId")
    title: str = Field(default="", alias="cuadernoTitulo")
    subject_id: str | None = Field(default=None, alias="materiaId")

    score: float = Field(default=0, alias="scoreCuaderno")
    max_quiz_score: float = Field(default=0, alias="maxQuizScore")
    ranking_position: int = Field(default=1, alias="posicionRanking")
    total_students: int = Field(default=1, alias="totalAlumnosCuaderno")
    percentile: int = Field(default=100, alias="percentilCuaderno")

    concept_count: int = Field(default=0, alias="numeroConceptos")
    mastered_concepts: int = Field(default=0, alias="conceptosDominados")
    unmastered_concepts: int = Field(default=0, alias="conceptosNoDominados")
    mastery_percentage: int = Field(default=0, alias="porcentajeDominioConceptos")

    study_minutes: int = Field(default=0, alias="tiempoEstudioLocal")
    smart_study_minutes: int = Field(default=0, alias="tiempoEstudioInteligente")
    free_study_minutes: int = Field(default=0, alias="tiempoEstudioLibre")
    quiz_minutes: int = Field(default=0, alias="tiempoQuiz")

    smart_studies: int = Field(default=0, alias="estudiosInteligentesLocal")
    free_studies: int = Field(default=0, alias="estudiosLibresLocal")
    smart_studies_successful: int = Field(default=0, alias="estudiosInteligentesExitosos")
    smart_studies_total: int = Field(default=0, alias="estudiosInteligentesTotales")
    smart_success_percentage: int = Field(default=0, alias="porcentajeExitoEstudiosInteligentes")


class SubjectKpis(_WireModel):
    """Per-subject rollup of a student's notebooks."""

    subject_id: str = Field(alias="materiaId")
    score: float = Field(default=0, alias="scoreMateria")
    percentile: int = Field(default=100, alias="percentilMateria")
    ranking_position: int = Field(default=1, alias="posicionRanking")
    total_students: int = Field(default=1, alias="totalAlumnosMateria")
    study_minutes: int = Field(default=0, alias="tiempoEstudioMateria")
    smart_studies: int = Field(default=0, alias="estudiosInteligentesMateria")
    notebook_ids: list[str] = Field(default_factory=list, alias="cuadernosIds")


class GlobalKpis(_WireModel):
    """Account-wide totals of a student's dashboard."""

    score: float = Field(default=0, alias="scoreGlobal")
    average_percentile: int = Field(default=0, alias="percentilPromedioGlobal")
    study_minutes: int = Field(default=0, alias="tiempoEstudioGlobal")
    smart_studies: int = Field(default=0, alias="estudiosInteligentesGlobal")
    total_notebooks: int = Field(default=0, alias="totalCuadernos")
    total_subjects: int = Field(default=0, alias="totalMaterias")
    updated_at: datetime = Field(alias="ultimaActualizacion")


class DayHistogram(_WireModel):
    """Activity of one weekday."""

    total_minutes: int = Field(default=0, alias="tiempoTotal")
    quiz_sessions: int = Field(default=0, alias="sesionesQuiz")
    smart_sessions: int = Field(default=0, alias="sesionesEstudioInteligente")
    free_sessions: int = Field(default=0, alias="sesionesEstudioLibre")


class PositionHistoryEntry(_WireModel):
    """Weekly record of the global score and percentile."""

    week: str = Field(alias="semana")
    score: float = Field(default=0, alias="scoreGlobal")
    average_percentile: int = Field(default=0, alias="percentilPromedio")
    recorded_at: datetime = Field(alias="fecha")


class UserKpiSnapshot(_WireModel):
    """Document stored at ``users/{uid}/kpis/dashboard``."""

    global_: GlobalKpis = Field(alias="global")
    notebooks: dict[str, NotebookKpis] = Field(default_factory=dict, alias="cuadernos")
    subjects: dict[str, SubjectKpis] = Field(default_factory=dict, alias="materias")
    weekly_minutes: dict[str, int] = Field(default_factory=_empty_week, alias="tiempoEstudioSemanal")
    weekly_histogram: dict[str, DayHistogram] = Field(
        default_factory=dict, alias="histogramaSemanal"
    )
    position_history: list[PositionHistoryEntry] = Field(
        default_factory=list, alias="historicosPosiciones"
    )


class TeacherNotebookKpis(_WireModel):
    """Class averages for one notebook of a teacher."""

    title: str = Field(default="", alias="nombreCuaderno")
    subject_id: str = Field(alias="materiaId")
    average_score: float = Field(default=0, alias="scorePromedio")
    mastery_percentage: int = Field(default=0, alias="porcentajeDominioConceptos")
    effective_minutes: float = Field(default=0, alias="tiempoEfectivo")
    active_minutes: int = Field(default=0, alias="tiempoActivo")
    average_smart_studies: float = Field(default=0, alias="estudioPromedio")
    total_students: int = Field(default=0, alias="totalAlumnos")
    students_with_data: int = Field(default=0, alias="alumnosConDatos")
    mastered_concepts: int = Field(default=0, alias="conceptosDominados")
    total_concepts: int = Field(default=0, alias="conceptosTotales")


class TeacherSubjectKpis(_WireModel):
    """Class averages across the notebooks of one subject."""

    name: str = Field(default="", alias="nombreMateria")
    average_score: float = Field(default=0, alias="scorePromedio")
    mastery_percentage: int = Field(default=0, alias="porcentajeDominioConceptos")
    effective_minutes: float = Field(default=0, alias="tiempoEfectivo")
    active_minutes: int = Field(default=0, alias="tiempoActivo")
    average_smart_studies: float = Field(default=0, alias="estudioPromedio")
    total_students: int = Field(default=0, alias="totalAlumnos")
    total_notebooks: int = Field(default=0, alias="totalCuadernos")


class TeacherGlobalKpis(_WireModel):
    """Class averages across every subject of a teacher."""

    average_score: float = Field(default=0, alias="scorePromedio")
    mastery_percentage: int = Field(default=0, alias="porcentajeDominioConceptos")
    effective_minutes: float = Field(default=0, alias="tiempoEfectivo")
    active_minutes: int = Field(default=0, alias="tiempoActivo")
    average_smart_studies: float = Field(default=0, alias="estudioPromedio")
    total_students: int = Field(default=0, alias="totalAlumnos")
    total_subjects: int = Field(default=0, alias="totalMaterias")
    total_notebooks: int = Field(default=0, alias="totalCuadernos")
    updated_at: datetime = Field(alias="ultimaActualizacion")


class TeacherKpiSnapshot(_WireModel):
    """Document stored at ``teacherKpis/{teacherId}``."""

    global_: TeacherGlobalKpis = Field(alias="global")
    subjects: dict[str, TeacherSubjectKpis] = Field(default_factory=dict, alias="materias")
    notebooks: dict[str, TeacherNotebookKpis] = Field(default_factory=dict, alias="cuadernos")
    weekly_minutes: dict[str, int] = Field(default_factory=_empty_week, alias="tiempoEstudioSemanal")
