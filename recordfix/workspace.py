# recordfix/workspace.py
from __future__ import annotations

import json
import os
import re
import tempfile
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Callable, Dict, List, Optional

from recordfix.corrections import create_correction, set_completion
from recordfix.models import Student, TimetableEntry, WorkspaceData
from recordfix.parser import parse_correction_backup, parse_elective_token, parse_roster, parse_timetable
from recordfix.resolver import available_subjects, elective_names_for_grade
from recordfix.utils import parse_grade_class


# =========================
# 설정값(필요하면 여기만 수정)
# =========================
STORAGE_KEY_PREFIX = "teacher_hub_ws_"
WORKSPACE_CODE_RE = re.compile(r"^[0-9A-Za-z가-힣_-]+$")


@dataclass
class ServiceResult:
    ok: bool
    logs: List[str] = field(default_factory=list)
    count: int = 0


def normalize_workspace_code(code: str) -> str:
    s = (code or "").strip().upper()
    if not s:
        raise ValueError("[오류] 워크스페이스 코드가 비어 있습니다.")
    if not WORKSPACE_CODE_RE.match(s):
        raise ValueError(f"[오류] 워크스페이스 코드에는 한글/영문/숫자/-/_ 만 쓸 수 있습니다: {code!r}")
    return s


# ========== 저장소 ==========

class WorkspaceRepository:
    """워크스페이스 저장소 인터페이스: load / save / delete."""

    def load(self, code: str) -> WorkspaceData:
        raise NotImplementedError

    def save(self, code: str, data: WorkspaceData) -> None:
        raise NotImplementedError

    def delete(self, code: str) -> None:
        raise NotImplementedError

    def exists(self, code: str) -> bool:
        raise NotImplementedError


class MemoryRepository(WorkspaceRepository):
    def __init__(self):
        self._store: Dict[str, dict] = {}

    def load(self, code: str) -> WorkspaceData:
        raw = self._store.get(normalize_workspace_code(code))
        if raw is None:
            return WorkspaceData()
        return WorkspaceData.from_dict(json.loads(json.dumps(raw)))

    def save(self, code: str, data: WorkspaceData) -> None:
        self._store[normalize_workspace_code(code)] = data.to_dict()

    def delete(self, code: str) -> None:
        self._store.pop(normalize_workspace_code(code), None)

    def exists(self, code: str) -> bool:
        return normalize_workspace_code(code) in self._store


class JsonFileRepository(WorkspaceRepository):
    """코드 1개 = JSON 파일 1개 (root/teacher_hub_ws_{code}.json)."""

    def __init__(self, root: Path):
        self.root = Path(root)

    def path_for(self, code: str) -> Path:
        return self.root / f"{STORAGE_KEY_PREFIX}{normalize_workspace_code(code)}.json"

    def load(self, code: str) -> WorkspaceData:
        p = self.path_for(code)
        if not p.exists():
            return WorkspaceData()
        try:
            raw = json.loads(p.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            raise ValueError(f"[오류] 워크스페이스 파일이 손상되었습니다: {p.name}") from e
        return WorkspaceData.from_dict(raw)

    def save(self, code: str, data: WorkspaceData) -> None:
        p = self.path_for(code)
        p.parent.mkdir(parents=True, exist_ok=True)
        # 저장마다 임시 파일 이름이 다름 (여러 세션 동시 저장)
        fd, tmp_path = tempfile.mkstemp(prefix=p.stem + "_", suffix=".tmp", dir=p.parent)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data.to_dict(), f, ensure_ascii=False, indent=2)
            os.replace(tmp_path, p)
        finally:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)

    def delete(self, code: str) -> None:
        p = self.path_for(code)
        if p.exists():
            p.unlink()

    def exists(self, code: str) -> bool:
        return self.path_for(code).exists()


# ========== 서비스 ==========

def _run(action: Callable[[Callable[[str], None]], int]) -> ServiceResult:
    """action(log) 실행 → ServiceResult. 예외면 [ERROR] 로그 남기고 ok=False (저장 안 됨)."""
    logs: List[str] = []

    def log(msg: str):
        logs.append(msg)

    try:
        count = action(log)
    except Exception as e:
        log(f"[ERROR] {e}")
        return ServiceResult(ok=False, logs=logs)
    return ServiceResult(ok=True, logs=logs, count=count)


def _check_semester(semester: int) -> None:
    if semester not in (1, 2):
        raise ValueError(f"[오류] 학기는 1 또는 2 여야 합니다: {semester!r}")


def upload_roster(repo: WorkspaceRepository, code: str, data: bytes, semester: int = 1) -> ServiceResult:
    """학생 선택과목 명단 업로드: 해당 학기 명단을 통째로 교체."""

    def action(log):
        _check_semester(semester)
        students = parse_roster(data, log=log)
        ws = repo.load(code)
        ws.set_students(semester, students)
        repo.save(code, ws)
        log(f"[OK] {semester}학기 학생 명단 저장 ({len(students)}명)")
        return len(students)

    return _run(action)


def upload_timetable(repo: WorkspaceRepository, code: str, data: bytes, semester: int = 1) -> ServiceResult:
    """교사별 시수표 업로드: 해당 학기 시간표를 통째로 교체 (수동 추가 과목은 유지)."""

    def action(log):
        _check_semester(semester)
        entries = parse_timetable(data, log=log)
        ws = repo.load(code)
        ws.set_timetable(semester, entries)
        repo.save(code, ws)
        log(f"[OK] {semester}학기 시간표 저장 ({len(entries)}개)")
        return len(entries)

    return _run(action)


def import_backup(repo: WorkspaceRepository, code: str, data: bytes, now: Optional[datetime] = None) -> ServiceResult:
    """정정 내역 백업 업로드: 기존 내역 뒤에 누적 추가."""

    def action(log):
        corrections = parse_correction_backup(data, normalize_workspace_code(code), log=log, now=now)
        ws = repo.load(code)
        ws.corrections.extend(corrections)
        repo.save(code, ws)
        log(f"[OK] 정정 내역 {len(corrections)}건 누적 업로드")
        return len(corrections)

    return _run(action)


def add_manual_student(
    repo: WorkspaceRepository,
    code: str,
    student_id: str,
    name: str,
    electives: Optional[List[str]] = None,
    semester: int = 1,
) -> ServiceResult:
    """학생 직접 추가. 같은 학번이 있으면 새 값으로 덮어쓴다."""

    def action(log):
        _check_semester(semester)
        sid = (student_id or "").strip()
        nm = (name or "").strip()
        if not sid or not nm:
            raise ValueError("[오류] 학번과 성명을 모두 입력하세요.")

        parsed = []
        for raw in electives or []:
            raw = (raw or "").strip()
            if not raw:
                continue
            if len(raw.split("_")) < 2:
                log(f"[WARN] 선택과목 형식이 아니라 건너뜀: {raw}")
                continue
            e = parse_elective_token(raw)
            if e is not None:
                parsed.append(e)

        grade, class_num = parse_grade_class(sid)
        student = Student(id=sid, name=nm, grade=grade, class_num=class_num, electives=parsed)

        ws = repo.load(code)
        current = ws.students_for(semester)
        replaced = any(s.id == sid for s in current)
        merged = [student if s.id == sid else s for s in current]
        if not replaced:
            merged.append(student)
        ws.set_students(semester, merged)
        repo.save(code, ws)
        log(f"[OK] 학생 {'수정' if replaced else '추가'}: {sid} {nm}")
        return 1

    return _run(action)


def add_manual_timetable_entry(
    repo: WorkspaceRepository,
    code: str,
    teacher_name: str,
    grade: int,
    subject_name: str,
    class_num: str,
) -> ServiceResult:
    """시간표에 없는 수업을 직접 추가 (학기 공통)."""

    def action(log):
        entry = TimetableEntry(
            teacher_name=(teacher_name or "").strip(),
            grade=int(grade),
            subject_name=(subject_name or "").strip(),
            class_num=str(class_num).strip(),
        )
        if not entry.teacher_name or not entry.subject_name or not entry.class_num or entry.grade <= 0:
            raise ValueError("[오류] 교사명/학년/과목명/반을 모두 입력하세요.")

        ws = repo.load(code)
        if entry in ws.manual_timetable:
            log("[INFO] 이미 등록된 수업입니다.")
            return 0
        ws.manual_timetable.append(entry)
        repo.save(code, ws)
        log(f"[OK] 수업 추가: {entry.grade}학년 {entry.class_num}반 {entry.subject_name} ({entry.teacher_name})")
        return 1

    return _run(action)


def add_correction(
    repo: WorkspaceRepository,
    code: str,
    student_id: str,
    subject_key: str,
    before: str,
    after: str,
    semester: int = 1,
    now: Optional[datetime] = None,
) -> ServiceResult:
    """정정 1건 등록. 과목은 available_subjects 의 key 로 고른다."""

    def action(log):
        _check_semester(semester)
        ws = repo.load(code)
        students = ws.students_for(semester)
        student = next((s for s in students if s.id == student_id), None)
        if student is None:
            raise ValueError(f"[오류] {semester}학기 명단에서 학번 {student_id} 학생을 찾지 못했습니다.")

        timetable = ws.timetable_for(semester)
        subjects = available_subjects(student, timetable, elective_names_for_grade(students, student.grade))
        subject = next((a for a in subjects if a.key == subject_key), None)
        if subject is None:
            raise ValueError(f"[오류] 선택할 수 없는 과목입니다: {subject_key}")

        correction = create_correction(
            normalize_workspace_code(code), student, subject, before, after, semester, timetable, now=now
        )
        ws.corrections.append(correction)
        repo.save(code, ws)
        if correction.teachers:
            log(f"[OK] 정정 등록: {student.name} / {correction.subject_name} → {', '.join(correction.teachers)}")
        else:
            log(f"[WARN] 정정 등록: {student.name} / {correction.subject_name} (담당교사 미확인)")
        return 1

    return _run(action)


def delete_correction(repo: WorkspaceRepository, code: str, correction_id: str) -> ServiceResult:
    def action(log):
        ws = repo.load(code)
        kept = [c for c in ws.corrections if c.id != correction_id]
        removed = len(ws.corrections) - len(kept)
        if not removed:
            log(f"[INFO] 삭제할 정정 내역이 없습니다: {correction_id}")
            return 0
        ws.corrections = kept
        repo.save(code, ws)
        log("[OK] 정정 내역 삭제")
        return removed

    return _run(action)


def set_correction_status(
    repo: WorkspaceRepository,
    code: str,
    correction_id: str,
    is_completed: bool,
    now: Optional[datetime] = None,
) -> ServiceResult:
    def action(log):
        ws = repo.load(code)
        target = next((c for c in ws.corrections if c.id == correction_id), None)
        if target is None:
            raise ValueError(f"[오류] 정정 내역을 찾지 못했습니다: {correction_id}")
        set_completion(target, is_completed, now=now)
        repo.save(code, ws)
        log(f"[OK] {'완료' if is_completed else '미완료'} 처리: {target.student_name} / {target.subject_name}")
        return 1

    return _run(action)


def set_password(repo: WorkspaceRepository, code: str, password: Optional[str]) -> ServiceResult:
    def action(log):
        ws = repo.load(code)
        ws.password = (password or "").strip() or None
        repo.save(code, ws)
        log("[OK] 호스트 비밀번호 " + ("설정" if ws.password else "해제"))
        log("[INFO] 비밀번호는 저장만 되며 입장 제한에는 사용되지 않습니다.")
        return 1

    return _run(action)


def clear_workspace(repo: WorkspaceRepository, code: str) -> ServiceResult:
    """워크스페이스의 모든 자료(명단/시간표/정정 내역) 영구 삭제."""

    def action(log):
        repo.delete(code)
        log("[OK] 모든 데이터가 삭제되었습니다.")
        return 1

    return _run(action)
