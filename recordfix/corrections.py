# recordfix/corrections.py
from __future__ import annotations

import re
import uuid
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Tuple

from recordfix.excel_io import build_sheet_bytes
from recordfix.models import AvailableSubject, Correction, Student, TimetableEntry
from recordfix.resolver import teachers_for
from recordfix.utils import format_grade_class, text_eq


# =========================
# 설정값(필요하면 여기만 수정)
# =========================
EXPORT_SHEET_TITLE = "정정내역"
EXPORT_HEADERS = ["학기", "학번", "성명", "교과목명", "담당교사", "수정전", "수정후", "완료여부", "완료시각"]
EXPORT_COL_WIDTHS = {"학번": 10, "성명": 10, "교과목명": 22, "담당교사": 16, "수정전": 30, "수정후": 30, "완료시각": 20}
DONE_LABEL = "완료"
PENDING_LABEL = "미완료"
TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"

SAMPLE_SHEET_TITLE = "학생명단양식"
SAMPLE_ROSTER_ROWS = [
    ["학번", "성명", "선택1", "선택2", "선택3", "선택4"],
    ["10101", "홍길동", "A_화학1_1반", "B_지구과학1_2반", "C_경제_1반", "D_심리학_1반"],
    ["10102", "김철수", "A_생명과학1_1반", "B_물리학1_1반", "C_정치와법_1반", "D_철학_2반"],
]

GRADE_CLASS_RE = re.compile(r"^\s*(\d+)\s*학년\s*(\d+)\s*반\s*$")


# ========== 생성 ==========

def new_correction_id(student_id: str, now: datetime) -> str:
    ms = int(now.timestamp() * 1000)
    return f"{student_id}_{ms}_{uuid.uuid4().hex[:5]}"


def create_correction(
    workspace_code: str,
    student: Student,
    subject: AvailableSubject,
    before: str,
    after: str,
    semester: int,
    timetable: Iterable[TimetableEntry],
    now: Optional[datetime] = None,
) -> Correction:
    """
    정정 1건 생성. 담당교사는 지금 시점 시간표로 한 번만 찾아서 저장한다.
    못 찾으면 teachers 는 빈 리스트.
    """
    before = (before or "").strip()
    after = (after or "").strip()
    if not before or not after:
        raise ValueError("[오류] 수정 전/후 내용을 모두 입력하세요.")
    if semester not in (1, 2):
        raise ValueError(f"[오류] 학기는 1 또는 2 여야 합니다: {semester!r}")

    now = now or datetime.now()
    teachers = teachers_for(subject.subject_name, subject.class_num, subject.is_elective, student, list(timetable))

    return Correction(
        id=new_correction_id(student.id, now),
        workspace_code=workspace_code,
        student_id=student.id,
        student_name=student.name,
        grade_class=format_grade_class(student.grade, student.class_num),
        subject_key=subject.key,
        subject_name=subject.label,
        before=before,
        after=after,
        teachers=list(teachers),
        created_at=now,
        semester=semester,
    )


# ========== 완료 처리 ==========

def set_completion(correction: Correction, is_completed: bool, now: Optional[datetime] = None) -> Correction:
    """완료로 바꾸면 완료시각 = 지금, 미완료로 되돌리면 완료시각 삭제."""
    correction.is_completed = bool(is_completed)
    correction.completed_at = (now or datetime.now()) if is_completed else None
    return correction


def toggle_completion(correction: Correction, now: Optional[datetime] = None) -> Correction:
    return set_completion(correction, not correction.is_completed, now=now)


# ========== 조회 ==========

def teacher_names(timetable: Iterable[TimetableEntry]) -> List[str]:
    return sorted({t.teacher_name for t in timetable if t.teacher_name})


def _assigned_to(correction: Correction, teacher: str) -> bool:
    # 시간표/백업 파일마다 교사명 공백, NFC/NFD 가 다를 수 있음
    return any(text_eq(t, teacher) for t in correction.teachers)


def corrections_for_teacher(corrections: Iterable[Correction], teacher: str) -> List[Correction]:
    mine = [c for c in corrections if _assigned_to(c, teacher)]
    return sorted(mine, key=lambda c: c.student_id)


def pending_counts(corrections: Iterable[Correction], teachers: Iterable[str]) -> Dict[str, int]:
    """교사별 미완료 건수 (0건인 교사는 빠짐)."""
    corrections = list(corrections)
    counts: Dict[str, int] = {}
    for name in teachers:
        n = sum(1 for c in corrections if _assigned_to(c, name) and not c.is_completed)
        if n > 0:
            counts[name] = n
    return counts


def parse_grade_class_label(label: str) -> Optional[Tuple[int, int]]:
    """'2학년 3반' -> (2, 3)"""
    m = GRADE_CLASS_RE.match(label or "")
    if not m:
        return None
    return int(m.group(1)), int(m.group(2))


def class_labels(students: Iterable[Student]) -> List[str]:
    """학급 목록 ('1학년 2반' ...), 학년/반 숫자 순."""
    pairs = {(s.grade, s.class_num) for s in students}
    return [format_grade_class(g, c) for g, c in sorted(pairs)]


def students_in_class(students: Iterable[Student], label: str) -> List[Student]:
    parsed = parse_grade_class_label(label)
    if parsed is None:
        return []
    grade, class_num = parsed
    return [s for s in students if s.grade == grade and s.class_num == class_num]


def filter_by_class(corrections: Iterable[Correction], grade_class: str) -> List[Correction]:
    return [c for c in corrections if c.grade_class == grade_class]


# ========== 내보내기 ==========

def format_timestamp(dt: Optional[datetime]) -> str:
    return dt.strftime(TIMESTAMP_FORMAT) if dt else ""


def correction_export_rows(corrections: Iterable[Correction]) -> List[List[str]]:
    rows: List[List[str]] = []
    for c in corrections:
        rows.append(
            [
                str(c.semester),
                c.student_id,
                c.student_name,
                c.subject_name,
                ", ".join(c.teachers),
                c.before,
                c.after,
                DONE_LABEL if c.is_completed else PENDING_LABEL,
                format_timestamp(c.completed_at),
            ]
        )
    return rows


def build_correction_export(corrections: Iterable[Correction]) -> bytes:
    """정정 내역 백업 엑셀(xlsx) bytes. 다시 올리면 parse_correction_backup 으로 읽힌다."""
    return build_sheet_bytes(
        EXPORT_SHEET_TITLE,
        EXPORT_HEADERS,
        correction_export_rows(corrections),
        col_widths=EXPORT_COL_WIDTHS,
    )


def export_file_name(grade_class: Optional[str] = None) -> str:
    if grade_class:
        return f"{grade_class}_정정내역_백업.xlsx"
    return "전체학급_정정내역_백업.xlsx"


def build_roster_sample() -> bytes:
    """학생 선택과목 명단 양식 예시 파일."""
    return build_sheet_bytes(SAMPLE_SHEET_TITLE, SAMPLE_ROSTER_ROWS[0], SAMPLE_ROSTER_ROWS[1:])
