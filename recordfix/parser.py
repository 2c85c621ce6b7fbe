# recordfix/parser.py
from __future__ import annotations

import math
import re
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Sequence, Set, Tuple

from recordfix.excel_io import header_key, read_sheet_records, read_sheet_rows
from recordfix.models import Correction, Elective, Student, TimetableEntry
from recordfix.utils import cell_text, first_digits, format_grade_class, parse_grade_class


# =========================
# 설정값(필요하면 여기만 수정)
# =========================

# 학생 선택과목 명단 (A열 학번, B열 성명, C열~ 선택과목)
ROSTER_COL_ID = 0
ROSTER_COL_NAME = 1
ROSTER_COL_ELECTIVE_START = 2

# 교사별 시수표: 2행 학년(E2~), 3행 반(E3~), B열 과목(B4~), D열 교사(D4~)
TT_ROW_GRADE = 1
TT_ROW_CLASS = 2
TT_ROW_DATA_START = 3
TT_COL_SUBJECT = 1
TT_COL_TEACHER = 3
TT_COL_DATA_START = 4

# 정정 내역 백업 파일 헤더
BACKUP_HEADERS = {
    "student_id": "학번",
    "student_name": "성명",
    "subject": "교과목명",
    "before": "수정전",
    "after": "수정후",
    "teachers": "담당교사",
    "semester": "학기",
}

CLASS_SUFFIX_RE = re.compile(r"(\d+)반")

LogFn = Optional[Callable[[str], None]]


def _noop(msg: str) -> None:
    pass


# ========== 선택과목 토큰 ==========

def parse_elective_token(raw: str) -> Optional[Elective]:
    """
    'B_지구과학_8반' -> Elective(group='B', subject_name='지구과학', class_num='8')

    - 첫 조각 = 그룹
    - 마지막 조각에서 'N반' 의 N = 반 (없으면 '')
    - 가운데 조각들 '_' 로 이어붙인 것 = 과목명 (가운데가 없으면 두 번째 조각)
    - 과목명이 비면 None
    """
    raw = cell_text(raw)
    parts = raw.split("_")
    if len(parts) < 2:
        raise ValueError(f"[오류] 선택과목 표기가 '그룹_과목명_N반' 형식이 아닙니다: {raw!r}")

    group = parts[0]
    subject_with_class = parts[-1]
    subject_name = ("_".join(parts[1:-1]) or parts[1]).strip()
    if not subject_name:
        return None

    m = CLASS_SUFFIX_RE.search(subject_with_class)
    return Elective(
        raw=raw,
        group=group,
        subject_name=subject_name,
        class_num=m.group(1) if m else "",
    )


# ========== 학생 선택과목 명단 ==========

def parse_roster(data: bytes, log: LogFn = None) -> List[Student]:
    """
    학생 선택과목 명단 파싱.

    1행은 헤더라 건너뛰고, 2행부터:
      A열 학번 / B열 성명 (둘 다 필수, 없으면 그 행은 건너뜀)
      C열~ 선택과목 토큰 (열 순서대로)
    학번에서 학년/반을 뽑는다. 같은 학번이 여러 번 나와도 여기서는 그대로 둔다.
    """
    log = log or _noop
    rows = read_sheet_rows(data)

    students: List[Student] = []
    skipped_rows = 0
    skipped_tokens = 0

    for row in rows[1:]:
        if len(row) < 2:
            if row:
                skipped_rows += 1
            continue

        student_id = cell_text(row[ROSTER_COL_ID])
        name = cell_text(row[ROSTER_COL_NAME])
        if not student_id or not name:
            skipped_rows += 1
            continue

        grade, class_num = parse_grade_class(student_id)

        electives: List[Elective] = []
        for val in row[ROSTER_COL_ELECTIVE_START:]:
            raw = cell_text(val)
            if not raw:
                continue
            if len(raw.split("_")) < 2:
                skipped_tokens += 1
                continue
            elective = parse_elective_token(raw)
            if elective is None:
                skipped_tokens += 1
                continue
            electives.append(elective)

        students.append(
            Student(id=student_id, name=name, grade=grade, class_num=class_num, electives=electives)
        )

    log(f"[OK] 학생 {len(students)}명 로드")
    if skipped_rows:
        log(f"[INFO] 학번/성명이 비어 건너뛴 행: {skipped_rows}개")
    if skipped_tokens:
        log(f"[WARN] 형식이 맞지 않아 건너뛴 선택과목 칸: {skipped_tokens}개")
    return students


# ========== 교사별 시수표 ==========

@dataclass(frozen=True)
class ColumnContext:
    grade: int
    class_num: str


def _fold_column(current_grade: int, grade_label: Any, class_label: Any) -> Tuple[int, ColumnContext]:
    """
    열 하나 처리: (직전 학년, 학년칸, 반칸) -> (다음 열로 넘길 학년, 이 열의 문맥)
    학년칸은 병합 셀이라 값이 있는 열에서만 갱신되고 오른쪽으로 이어진다.
    0 이나 숫자 없는 값으로는 갱신하지 않는다.
    """
    digits = first_digits(grade_label)
    if digits and int(digits) > 0:
        current_grade = int(digits)
    return current_grade, ColumnContext(grade=current_grade, class_num=first_digits(class_label))


def build_column_context(
    grade_row: Sequence[Any],
    class_row: Sequence[Any],
    start_col: int = TT_COL_DATA_START,
) -> Dict[int, ColumnContext]:
    """학년 행/반 행 -> {열 index: ColumnContext} (start_col 부터)."""
    grade_row = grade_row or []
    class_row = class_row or []
    max_cols = max(len(grade_row), len(class_row))

    context: Dict[int, ColumnContext] = {}
    grade = 0
    for c in range(start_col, max_cols):
        grade_label = grade_row[c] if c < len(grade_row) else None
        class_label = class_row[c] if c < len(class_row) else None
        grade, context[c] = _fold_column(grade, grade_label, class_label)
    return context


def _is_hours_value(value: Any) -> bool:
    """시수 칸: 값이 있고 숫자로 읽히면 True."""
    if value is None:
        return False
    if isinstance(value, (int, float)):
        return not (isinstance(value, float) and math.isnan(value))
    s = str(value).strip()
    if not s:
        return False
    try:
        return not math.isnan(float(s))
    except ValueError:
        return False


def parse_timetable(data: bytes, log: LogFn = None) -> List[TimetableEntry]:
    """
    교사별 시수표(격자형) 파싱.

    양식:
      2행  E열~ 학년 (병합 셀 → 왼쪽 값 이어받기)
      3행  E열~ 반
      4행~ B열 과목명 / D열 교사명 / E열~ 시수

    시수 칸에 숫자가 있는 (학년, 반) 마다 TimetableEntry 1개.
    (교사, 학년, 과목, 반) 이 같은 항목은 처음 것만 남긴다.
    """
    log = log or _noop
    rows = read_sheet_rows(data)
    if len(rows) < 4:
        log("[WARN] 시간표 행이 4개 미만이라 읽을 내용이 없습니다.")
        return []

    context = build_column_context(rows[TT_ROW_GRADE], rows[TT_ROW_CLASS])

    entries: List[TimetableEntry] = []
    seen: Set[Tuple[str, int, str, str]] = set()
    skipped_rows = 0

    for row in rows[TT_ROW_DATA_START:]:
        if not row:
            continue
        subject_name = cell_text(row[TT_COL_SUBJECT]) if len(row) > TT_COL_SUBJECT else ""
        teacher_name = cell_text(row[TT_COL_TEACHER]) if len(row) > TT_COL_TEACHER else ""
        if not subject_name or not teacher_name:
            skipped_rows += 1
            continue

        for c in range(TT_COL_DATA_START, len(row)):
            ctx = context.get(c)
            if ctx is None or ctx.grade <= 0 or not ctx.class_num:
                continue
            if not _is_hours_value(row[c]):
                continue

            key = (teacher_name, ctx.grade, subject_name, ctx.class_num)
            if key in seen:
                continue
            seen.add(key)
            entries.append(
                TimetableEntry(
                    teacher_name=teacher_name,
                    grade=ctx.grade,
                    subject_name=subject_name,
                    class_num=ctx.class_num,
                    is_common=False,
                )
            )

    teachers = {e.teacher_name for e in entries}
    log(f"[OK] 수업 정보 {len(entries)}개 로드 (교사 {len(teachers)}명)")
    if skipped_rows:
        log(f"[INFO] 과목명/교사명이 비어 건너뛴 행: {skipped_rows}개")
    return entries


# ========== 정정 내역 백업 ==========

def parse_semester(raw: Any) -> int:
    """'2학기' -> 2, '1' -> 1, 숫자 없으면 1."""
    m = re.search(r"\d", cell_text(raw))
    return int(m.group(0)) if m else 1


def split_teachers(raw: Any) -> List[str]:
    return [t.strip() for t in cell_text(raw).split(",") if t.strip()]


def imported_correction_id(now: datetime, idx: int) -> str:
    ms = int(now.timestamp() * 1000)
    return f"imported_{ms}_{idx}_{uuid.uuid4().hex[:5]}"


def parse_correction_backup(
    data: bytes,
    workspace_code: str,
    log: LogFn = None,
    now: Optional[datetime] = None,
) -> List[Correction]:
    """
    이전에 내보낸 정정 내역 엑셀을 다시 Correction 으로 읽는다.

    헤더: 학번, 성명, 교과목명, 수정전, 수정후, 담당교사, 학기
    - id 는 새로 만든다 ('imported_' 시작), 생성 시각은 지금
    - 완료여부/완료시각은 읽지 않는다 (다시 올리면 미완료 상태)
    """
    log = log or _noop
    now = now or datetime.now()
    records = read_sheet_records(data)

    keys = {slot: header_key(h) for slot, h in BACKUP_HEADERS.items()}

    def _get(rec: Dict[str, Any], slot: str) -> str:
        return cell_text(rec.get(keys[slot]))

    corrections: List[Correction] = []
    for idx, rec in enumerate(records):
        student_id = _get(rec, "student_id")
        grade, class_num = parse_grade_class(student_id)
        subject = _get(rec, "subject")

        corrections.append(
            Correction(
                id=imported_correction_id(now, idx),
                workspace_code=workspace_code,
                student_id=student_id,
                student_name=_get(rec, "student_name"),
                grade_class=format_grade_class(grade, class_num),
                subject_key=f"IMPORTED_{subject}",
                subject_name=subject,
                before=_get(rec, "before"),
                after=_get(rec, "after"),
                teachers=split_teachers(rec.get(keys["teachers"])),
                created_at=now,
                semester=parse_semester(rec.get(keys["semester"])),
            )
        )

    log(f"[OK] 정정 내역 {len(corrections)}건 로드")
    missing = [h for slot, h in BACKUP_HEADERS.items() if records and not any(keys[slot] in r for r in records)]
    if missing:
        log(f"[WARN] 백업 파일에서 값이 있는 열을 찾지 못했습니다: {', '.join(missing)}")
    return corrections
