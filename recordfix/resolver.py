# recordfix/resolver.py
from __future__ import annotations

from typing import Iterable, List, Set

from recordfix.models import AvailableSubject, Student, TimetableEntry
from recordfix.utils import is_same_subject, normalize_subject_name


# 화면 표시용. 저장 데이터에는 절대 넣지 않는다.
UNRESOLVED_TEACHER_LABEL = "담당교사 미확인"
COMMON_LABEL_PREFIX = "[공통] "


def elective_names_for_grade(students: Iterable[Student], grade: int) -> Set[str]:
    """해당 학년 학생 전체의 선택과목명(정규화) 집합."""
    names: Set[str] = set()
    for s in students:
        if s.grade != grade:
            continue
        for e in s.electives:
            norm = normalize_subject_name(e.subject_name)
            if norm:
                names.add(norm)
    return names


def find_teachers_in_context(
    subject_name: str,
    target_class: str,
    grade: int,
    timetable: Iterable[TimetableEntry],
) -> List[str]:
    """학년 + 반(문자열 비교) + 과목명(포함 관계) 이 맞는 시간표 항목의 교사명, 처음 나온 순서."""
    teachers: List[str] = []
    for t in timetable:
        if t.grade != grade:
            continue
        if str(t.class_num) != str(target_class):
            continue
        if not is_same_subject(t.subject_name, subject_name):
            continue
        if t.teacher_name not in teachers:
            teachers.append(t.teacher_name)
    return teachers


def teachers_for(
    subject_name: str,
    class_num: str,
    is_elective: bool,
    student: Student,
    timetable: Iterable[TimetableEntry],
) -> List[str]:
    """
    과목 담당교사 찾기.
    선택과목이면 선택과목 반, 아니면 학생의 담임반 기준으로 맞춘다.
    못 찾으면 빈 리스트.
    """
    target_class = class_num if is_elective else str(student.class_num)
    return find_teachers_in_context(subject_name, target_class, student.grade, timetable)


def display_teachers(teachers: List[str]) -> str:
    return ", ".join(teachers) if teachers else UNRESOLVED_TEACHER_LABEL


def available_subjects(
    student: Student,
    timetable: List[TimetableEntry],
    grade_elective_names: Iterable[str],
) -> List[AvailableSubject]:
    """
    학생 한 명이 정정 입력에 고를 수 있는 과목 목록.

    1) 본인 선택과목 (정규화 과목명 기준 중복 제거, 선택과목 반 기준으로 교사 매칭)
    2) 담임반 시간표 과목 중, 같은 학년 누군가의 선택과목과 같은 과목이 아닌 것 = 공통과목
       (담임반 기준으로 교사 매칭)
    선택과목이 항상 먼저, 각 그룹 안에서는 처음 나온 순서.
    """
    grade_names = list(grade_elective_names)
    seen: Set[str] = set()

    electives: List[AvailableSubject] = []
    for e in student.electives:
        norm = normalize_subject_name(e.subject_name)
        if norm in seen:
            continue
        seen.add(norm)
        electives.append(
            AvailableSubject(
                key=f"ELECTIVE_{e.raw}",
                label=e.raw,
                is_elective=True,
                subject_name=e.subject_name,
                class_num=e.class_num,
                teachers=teachers_for(e.subject_name, e.class_num, True, student, timetable),
            )
        )

    homeroom_class = str(student.class_num)
    commons: List[AvailableSubject] = []
    for t in timetable:
        if t.grade != student.grade or str(t.class_num) != homeroom_class:
            continue
        norm = normalize_subject_name(t.subject_name)
        if not norm or norm in seen:
            continue
        if any(is_same_subject(gn, t.subject_name) for gn in grade_names):
            continue
        seen.add(norm)
        commons.append(
            AvailableSubject(
                key=f"COMMON_{t.subject_name}",
                label=f"{COMMON_LABEL_PREFIX}{t.subject_name}",
                is_elective=False,
                subject_name=t.subject_name,
                class_num=homeroom_class,
                teachers=teachers_for(t.subject_name, homeroom_class, False, student, timetable),
            )
        )

    return electives + commons
