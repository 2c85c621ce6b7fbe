# recordfix/models.py
from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional


def _dt_to_str(v: Optional[datetime]) -> Optional[str]:
    return v.isoformat() if v is not None else None


def _dt_from_str(v: Any) -> Optional[datetime]:
    if v is None or v == "":
        return None
    if isinstance(v, datetime):
        return v
    return datetime.fromisoformat(str(v))


@dataclass(frozen=True)
class Elective:
    raw: str
    group: str
    subject_name: str
    class_num: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "Elective":
        return cls(
            raw=str(d.get("raw", "")),
            group=str(d.get("group", "")),
            subject_name=str(d.get("subject_name", "")),
            class_num=str(d.get("class_num", "")),
        )


@dataclass(frozen=True)
class Student:
    id: str
    name: str
    grade: int
    class_num: int
    electives: List[Elective] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "grade": self.grade,
            "class_num": self.class_num,
            "electives": [e.to_dict() for e in self.electives],
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "Student":
        return cls(
            id=str(d["id"]),
            name=str(d.get("name", "")),
            grade=int(d.get("grade", 0)),
            class_num=int(d.get("class_num", 0)),
            electives=[Elective.from_dict(e) for e in d.get("electives", [])],
        )


@dataclass(frozen=True)
class TimetableEntry:
    teacher_name: str
    grade: int
    subject_name: str
    class_num: str
    # 선택/공통 구분용 예약 필드. 시간표 파싱에서는 항상 False.
    is_common: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "TimetableEntry":
        return cls(
            teacher_name=str(d.get("teacher_name", "")),
            grade=int(d.get("grade", 0)),
            subject_name=str(d.get("subject_name", "")),
            class_num=str(d.get("class_num", "")),
            is_common=bool(d.get("is_common", False)),
        )


@dataclass
class Correction:
    id: str
    workspace_code: str
    student_id: str
    student_name: str
    grade_class: str
    subject_key: str
    subject_name: str
    before: str
    after: str
    teachers: List[str]
    created_at: datetime
    semester: int = 1
    is_completed: bool = False
    completed_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d["teachers"] = list(self.teachers)
        d["created_at"] = _dt_to_str(self.created_at)
        d["completed_at"] = _dt_to_str(self.completed_at)
        return d

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "Correction":
        return cls(
            id=str(d["id"]),
            workspace_code=str(d.get("workspace_code", "")),
            student_id=str(d.get("student_id", "")),
            student_name=str(d.get("student_name", "")),
            grade_class=str(d.get("grade_class", "")),
            subject_key=str(d.get("subject_key", "")),
            subject_name=str(d.get("subject_name", "")),
            before=str(d.get("before", "")),
            after=str(d.get("after", "")),
            teachers=[str(t) for t in d.get("teachers", [])],
            created_at=_dt_from_str(d.get("created_at")) or datetime.now(),
            semester=int(d.get("semester", 1)),
            is_completed=bool(d.get("is_completed", False)),
            completed_at=_dt_from_str(d.get("completed_at")),
        )


@dataclass(frozen=True)
class AvailableSubject:
    """학생 한 명 기준으로 정정 입력 시 고를 수 있는 과목 1개."""

    key: str
    label: str
    is_elective: bool
    subject_name: str
    class_num: str
    teachers: List[str] = field(default_factory=list)


@dataclass
class WorkspaceData:
    password: Optional[str] = None
    students1: List[Student] = field(default_factory=list)
    timetable1: List[TimetableEntry] = field(default_factory=list)
    students2: List[Student] = field(default_factory=list)
    timetable2: List[TimetableEntry] = field(default_factory=list)
    # 수동 추가된 과목들 (학기 공통)
    manual_timetable: List[TimetableEntry] = field(default_factory=list)
    corrections: List[Correction] = field(default_factory=list)

    def students_for(self, semester: int) -> List[Student]:
        return self.students2 if semester == 2 else self.students1

    def timetable_for(self, semester: int) -> List[TimetableEntry]:
        base = self.timetable2 if semester == 2 else self.timetable1
        return list(base) + list(self.manual_timetable)

    def corrections_for(self, semester: int) -> List[Correction]:
        return [c for c in self.corrections if c.semester == semester]

    def set_students(self, semester: int, students: List[Student]) -> None:
        if semester == 2:
            self.students2 = list(students)
        else:
            self.students1 = list(students)

    def set_timetable(self, semester: int, entries: List[TimetableEntry]) -> None:
        if semester == 2:
            self.timetable2 = list(entries)
        else:
            self.timetable1 = list(entries)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "password": self.password,
            "students1": [s.to_dict() for s in self.students1],
            "timetable1": [t.to_dict() for t in self.timetable1],
            "students2": [s.to_dict() for s in self.students2],
            "timetable2": [t.to_dict() for t in self.timetable2],
            "manual_timetable": [t.to_dict() for t in self.manual_timetable],
            "corrections": [c.to_dict() for c in self.corrections],
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "WorkspaceData":
        return cls(
            password=d.get("password") or None,
            students1=[Student.from_dict(x) for x in d.get("students1", [])],
            timetable1=[TimetableEntry.from_dict(x) for x in d.get("timetable1", [])],
            students2=[Student.from_dict(x) for x in d.get("students2", [])],
            timetable2=[TimetableEntry.from_dict(x) for x in d.get("timetable2", [])],
            manual_timetable=[TimetableEntry.from_dict(x) for x in d.get("manual_timetable", [])],
            corrections=[Correction.from_dict(x) for x in d.get("corrections", [])],
        )
