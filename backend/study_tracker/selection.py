"""Resolve student/team selections into the set of students an action targets."""

from __future__ import annotations

import enum
from typing import Optional, Sequence

from .constants import UNKNOWN_STUDENT_NAME
from .models import SelectionSet, Student, Team


class SelectionMode(str, enum.Enum):
    SINGLE = "single"
    MULTIPLE = "multiple"
    TEAM = "team"
    UNRECOGNIZED = "unrecognized"

    @classmethod
    def parse(cls, value: object) -> SelectionMode:
        """Parse a raw mode, falling back to UNRECOGNIZED instead of raising."""
        if isinstance(value, cls):
            return value
        for mode in (cls.SINGLE, cls.MULTIPLE, cls.TEAM):
            if value == mode.value:
                return mode
        return cls.UNRECOGNIZED


def get_student_name_by_id(student_id: str, students: Sequence[Student]) -> str:
    """Return the student's name, or "Unknown" if no such student exists."""
    for student in students:
        if student.id == student_id:
            return student.name or UNKNOWN_STUDENT_NAME
    return UNKNOWN_STUDENT_NAME


def resolve(
    mode: SelectionMode | str,
    selected_student_ids: Optional[Sequence[str]],
    selected_team_id: Optional[str],
    students: Sequence[Student],
    teams: Sequence[Team],
) -> SelectionSet:
    """
    Resolve a tagging choice into student ids and display names.

    - single: only the first selected id is used
    - multiple: every selected id, in order, duplicates kept
    - team: every member of the selected team, plus the team itself

    Anything that cannot be resolved (unknown mode, no selection, unknown
    team) yields an empty SelectionSet; this function never raises.
    """
    selected_student_ids = list(selected_student_ids or [])

    match SelectionMode.parse(mode):
        case SelectionMode.SINGLE:
            if not selected_student_ids:
                return SelectionSet()
            student_id = selected_student_ids[0]
            student = _find_student(student_id, students)
            return SelectionSet(
                student_ids=[student_id],
                student_names=[student.name] if student else [],
            )

        case SelectionMode.MULTIPLE:
            return SelectionSet(
                student_ids=selected_student_ids,
                student_names=[get_student_name_by_id(sid, students) for sid in selected_student_ids],
            )

        case SelectionMode.TEAM:
            team = next((t for t in teams if t.id == selected_team_id), None) if selected_team_id else None
            if team is None:
                return SelectionSet()
            return SelectionSet(
                student_ids=list(team.student_ids),
                student_names=[get_student_name_by_id(sid, students) for sid in team.student_ids],
                team_id=team.id,
                team_name=team.name,
            )

        case _:
            return SelectionSet()


def _find_student(student_id: str, students: Sequence[Student]) -> Optional[Student]:
    return next((s for s in students if s.id == student_id), None)
