# app.py (Streamlit)
from __future__ import annotations

import os
import re
from pathlib import Path
from typing import List, Optional

import streamlit as st

from recordfix.corrections import (
    build_correction_export,
    build_roster_sample,
    class_labels,
    corrections_for_teacher,
    export_file_name,
    filter_by_class,
    format_timestamp,
    pending_counts,
    students_in_class,
    teacher_names,
)
from recordfix.resolver import available_subjects, display_teachers, elective_names_for_grade
from recordfix.workspace import (
    JsonFileRepository,
    ServiceResult,
    add_correction,
    add_manual_student,
    add_manual_timetable_entry,
    clear_workspace,
    delete_correction,
    import_backup,
    normalize_workspace_code,
    set_correction_status,
    set_password,
    upload_roster,
    upload_timetable,
)

st.set_page_config(page_title="학교생활기록부 수정 사항 공유", layout="wide")

LOG_PATTERN = re.compile(r"\[(\w+)\]\s*(.*)")
DATA_DIR = Path(os.environ.get("RECORDFIX_DATA_DIR", "data"))

repo = JsonFileRepository(DATA_DIR)


def split_log_level(line: str) -> tuple[str, str]:
    """
    예: "[WARN] 형식이 맞지 않아 건너뛴 선택과목 칸: 2개"
    -> ("WARN", "형식이 맞지 않아 건너뛴 선택과목 칸: 2개")
    """
    m = LOG_PATTERN.match(line)
    if not m:
        return "INFO", line
    return m.group(1), m.group(2)


# -------------------------
# session init
# -------------------------
ss = st.session_state
ss.setdefault("workspace_code", "")
ss.setdefault("page", "HOME")  # HOME | SELECT | HOMEROOM | TEACHER | DELETE_CONFIRM
ss.setdefault("semester", 1)
ss.setdefault("selected_class", "")
ss.setdefault("selected_student_id", None)
ss.setdefault("selected_teacher", "")
ss.setdefault("last_logs", [])


# -------------------------
# helpers
# -------------------------
def show_result(res: ServiceResult, success_msg: Optional[str] = None):
    """ServiceResult → 상태 박스 + 로그 expander."""
    ss.last_logs = res.logs
    first_error = None
    warns: List[str] = []
    for line in res.logs:
        level, msg = split_log_level(line)
        if level == "ERROR" and first_error is None:
            first_error = msg
        elif level == "WARN":
            warns.append(msg)

    if not res.ok:
        st.error(first_error or "파일 파싱 중 오류가 발생했습니다.")
    else:
        for msg in warns:
            st.warning(msg)
        if success_msg:
            st.success(success_msg)

    with st.expander("처리 로그", expanded=False):
        st.code("\n".join(res.logs), language="text")


def go(page: str):
    ss.page = page


def leave_workspace():
    ss.workspace_code = ""
    ss.selected_class = ""
    ss.selected_student_id = None
    ss.selected_teacher = ""
    go("HOME")


# -------------------------
# Header
# -------------------------
st.title("학교생활기록부 수정 사항 공유 프로그램")
if ss.workspace_code:
    col_h1, col_h2 = st.columns([4, 1])
    with col_h1:
        st.caption(f"코드: {ss.workspace_code}")
    with col_h2:
        st.button("나가기", use_container_width=True, on_click=leave_workspace, key="btn_leave")


# ============================================================
# HOME: 워크스페이스 코드
# ============================================================
def render_home():
    st.header("워크스페이스 입장")
    st.caption("같은 코드를 입력한 선생님끼리 명단/시간표/정정 내역을 공유합니다.")

    col1, col2 = st.columns([4, 1])
    with col1:
        code_input = st.text_input(
            label="",
            value="",
            placeholder="예: 2026-3학년",
            label_visibility="collapsed",
            key="code_input",
        )
    with col2:
        clicked = st.button("입장", use_container_width=True, key="btn_enter")

    if clicked:
        try:
            ss.workspace_code = normalize_workspace_code(code_input)
        except ValueError as e:
            st.error(str(e))
            return
        go("SELECT")
        st.rerun()


# ============================================================
# SELECT: 역할 선택
# ============================================================
def render_select():
    st.header("사용하실 페이지를 선택해주세요.")
    col1, col2, col3 = st.columns(3)
    with col1:
        st.button("담임 교사", use_container_width=True, on_click=go, args=("HOMEROOM",), key="btn_homeroom")
        st.caption("정정 사항 입력 및 기초 데이터 관리")
    with col2:
        st.button("교과 담당 교사", use_container_width=True, on_click=go, args=("TEACHER",), key="btn_teacher")
        st.caption("배정된 정정 목록 확인 및 수정 완료 체크")
    with col3:
        st.button("개인정보 전체 삭제", use_container_width=True, on_click=go, args=("DELETE_CONFIRM",), key="btn_delete")
        st.caption("워크스페이스의 모든 데이터를 영구 삭제")

    with st.expander("호스트 비밀번호 (저장만 됨)", expanded=False):
        st.info("비밀번호는 워크스페이스에 저장만 되며, 현재 입장 제한에는 사용되지 않습니다.")
        has_pw = bool(repo.load(ss.workspace_code).password)
        st.caption("현재: " + ("설정됨" if has_pw else "없음") + " (비워두고 저장하면 해제)")
        pw = st.text_input("비밀번호", type="password", key="host_password")
        if st.button("저장", key="btn_password"):
            show_result(set_password(repo, ss.workspace_code, pw))


# ============================================================
# DELETE_CONFIRM
# ============================================================
def render_delete_confirm():
    st.header("정말 삭제하시겠습니까?")
    st.error(
        "이 버튼을 실행하면 입력한 모든 자료와 개인정보가 사라집니다.\n"
        "업로드한 엑셀 파일 정보와 정정 내역이 모두 초기화됩니다."
    )
    col1, col2 = st.columns(2)
    with col1:
        if st.button("예, 모두 삭제합니다", use_container_width=True, key="btn_delete_yes"):
            res = clear_workspace(repo, ss.workspace_code)
            if res.ok:
                leave_workspace()
                st.rerun()
            show_result(res)
    with col2:
        st.button("아니오, 취소합니다", use_container_width=True, on_click=go, args=("SELECT",), key="btn_delete_no")


# ============================================================
# HOMEROOM: 담임 교사
# ============================================================
def render_homeroom():
    code = ss.workspace_code
    st.button("뒤로가기", on_click=go, args=("SELECT",), key="btn_back_homeroom")

    ss.semester = st.radio("학기", options=[1, 2], index=ss.semester - 1, horizontal=True, key="semester_radio")
    semester = ss.semester
    data = repo.load(code)
    students = data.students_for(semester)
    timetable = data.timetable_for(semester)

    # ---------------- 1) 기초 데이터 ----------------
    st.header("기초 데이터 입력 및 백업 관리")

    col_a, col_b = st.columns(2)
    with col_a:
        st.markdown(f"**학생 선택과목 명단** (현재 {len(students)}명)")
        f_roster = st.file_uploader("학생 명단", type=["xlsx", "xlsb"], key=f"roster_upload_{semester}")
        if f_roster is not None and st.button("명단 반영", key="btn_roster_apply"):
            show_result(upload_roster(repo, code, f_roster.getvalue(), semester), "학생 명단이 반영되었습니다.")
            data = repo.load(code)
        st.download_button(
            "[파일 형식 예시 다운로드]",
            data=build_roster_sample(),
            file_name="학생선택과목명단_양식예시.xlsx",
            key="btn_sample",
        )
    with col_b:
        st.markdown(f"**교사 시간표** (현재 {len(data.timetable_for(semester))}개 수업 정보)")
        f_tt = st.file_uploader("교사별 시수표", type=["xlsx", "xlsb"], key=f"tt_upload_{semester}")
        if f_tt is not None and st.button("시간표 반영", key="btn_tt_apply"):
            show_result(upload_timetable(repo, code, f_tt.getvalue(), semester), "시간표가 반영되었습니다.")
            data = repo.load(code)
        st.caption("경로: [컴시간]-[프로그램]-[교사별 시수표.xlsx]")

    with st.expander("백업", expanded=False):
        f_backup = st.file_uploader("기존 백업 업로드", type=["xlsx", "xlsb"], key="backup_upload")
        if f_backup is not None and st.button("백업 누적 업로드", key="btn_backup_apply"):
            res = import_backup(repo, code, f_backup.getvalue())
            show_result(res, f"{res.count}건의 정정 내역이 누적 업로드되었습니다.")
            data = repo.load(code)

        all_corrections = data.corrections_for(semester)
        if all_corrections:
            st.download_button(
                "전체 학급 백업 저장",
                data=build_correction_export(all_corrections),
                file_name=export_file_name(),
                key="btn_export_all",
            )
        else:
            st.caption("등록된 정정 내역이 없습니다.")

    with st.expander("직접 추가 (학생 / 수업)", expanded=False):
        col_m1, col_m2 = st.columns(2)
        with col_m1:
            m_id = st.text_input("학번", key="manual_sid")
            m_name = st.text_input("성명", key="manual_name")
            m_el = st.text_input("선택과목 (쉼표 구분, 예: A_화학1_1반, B_지구과학1_2반)", key="manual_el")
            if st.button("학생 추가", key="btn_manual_student"):
                show_result(
                    add_manual_student(repo, code, m_id, m_name, m_el.split(","), semester),
                    "학생이 추가되었습니다.",
                )
        with col_m2:
            t_teacher = st.text_input("교사명", key="manual_teacher")
            t_grade = st.number_input("학년", min_value=1, max_value=6, value=1, step=1, key="manual_grade")
            t_subject = st.text_input("과목명", key="manual_subject")
            t_class = st.text_input("반", key="manual_class")
            if st.button("수업 추가", key="btn_manual_tt"):
                show_result(
                    add_manual_timetable_entry(repo, code, t_teacher, int(t_grade), t_subject, t_class),
                    "수업이 추가되었습니다.",
                )

    st.divider()

    # ---------------- 2) 학생 선택 ----------------
    data = repo.load(code)
    students = data.students_for(semester)
    timetable = data.timetable_for(semester)
    corrections = data.corrections_for(semester)

    st.header("대상 학생 선택")
    classes = class_labels(students)
    if not classes:
        st.warning("학생 명단을 먼저 업로드해 주세요.")
        return

    index = classes.index(ss.selected_class) if ss.selected_class in classes else None
    selected_class = st.selectbox(
        label="학급 선택",
        options=classes,
        index=index,
        placeholder="학급 선택",
        key="class_select",
    )
    if selected_class != ss.selected_class:
        ss.selected_class = selected_class or ""
        ss.selected_student_id = None

    if not ss.selected_class:
        st.info("학급을 먼저 선택해 주세요.")
        return

    class_corrections = filter_by_class(corrections, ss.selected_class)
    if class_corrections:
        st.download_button(
            "현재 학급 백업 저장",
            data=build_correction_export(class_corrections),
            file_name=export_file_name(ss.selected_class),
            key="btn_export_class",
        )

    class_students = students_in_class(students, ss.selected_class)
    if not class_students:
        st.info("학생 정보가 없습니다.")
        return

    def _student_label(s):
        total = sum(1 for c in corrections if c.student_id == s.id)
        done = sum(1 for c in corrections if c.student_id == s.id and c.is_completed)
        badge = f"  ({total}건 / {done}완료)" if total else ""
        return f"{s.id} {s.name}{badge}"

    ids = [s.id for s in class_students]
    by_id = {s.id: s for s in class_students}
    sel_index = ids.index(ss.selected_student_id) if ss.selected_student_id in ids else None
    sid = st.radio(
        "학생",
        options=ids,
        index=sel_index,
        format_func=lambda x: _student_label(by_id[x]),
        key=f"student_radio_{ss.selected_class}",
    )
    ss.selected_student_id = sid
    student = by_id.get(sid) if sid else None
    if student is None:
        st.info("왼쪽 목록에서 학생을 선택하세요.")
        return

    st.divider()

    # ---------------- 3) 정정 입력 ----------------
    st.header(f"{student.name} ({student.id})")
    subjects = available_subjects(student, timetable, elective_names_for_grade(students, student.grade))
    if not subjects:
        st.warning("선택할 수 있는 과목이 없습니다. 명단/시간표를 확인해 주세요.")
    else:
        sub_by_key = {a.key: a for a in subjects}
        with st.form(key=f"correction_form_{student.id}", clear_on_submit=True):
            key = st.selectbox(
                "수정 과목",
                options=list(sub_by_key.keys()),
                format_func=lambda k: f"{sub_by_key[k].label}  · {display_teachers(sub_by_key[k].teachers)}",
            )
            before = st.text_area("수정 전", height=80)
            after = st.text_area("수정 후", height=80)
            submitted = st.form_submit_button("정정 사항 추가", use_container_width=True)
        if submitted:
            show_result(add_correction(repo, code, student.id, key, before, after, semester))

    st.subheader("등록된 정정 내역")
    data = repo.load(code)
    mine = [c for c in data.corrections_for(semester) if c.student_id == student.id]
    if not mine:
        st.caption("등록된 정정 내역이 없습니다.")
    for c in mine:
        with st.container(border=True):
            col_c1, col_c2 = st.columns([5, 1])
            with col_c1:
                st.markdown(f"**{c.subject_name}** · {display_teachers(c.teachers)}")
                st.write(f"{c.before} → {c.after}")
                if c.is_completed:
                    st.caption(f"완료: {format_timestamp(c.completed_at)}")
                else:
                    st.caption("정정 대기 중...")
            with col_c2:
                if st.button("삭제", key=f"del_{c.id}", use_container_width=True):
                    show_result(delete_correction(repo, code, c.id))
                    st.rerun()


# ============================================================
# TEACHER: 교과 담당 교사
# ============================================================
def render_teacher():
    code = ss.workspace_code
    st.button("뒤로가기", on_click=go, args=("SELECT",), key="btn_back_teacher")
    if st.button("새로고침", key="btn_refresh"):
        st.rerun()

    data = repo.load(code)
    all_timetable = data.timetable1 + data.timetable2 + data.manual_timetable
    names = teacher_names(all_timetable)

    st.header("교과 담당 교사 확인")
    if not names:
        st.info("등록된 시간표 데이터가 없습니다. 담임 페이지에서 엑셀을 업로드해주세요.")
        return

    counts = pending_counts(data.corrections, names)
    index = names.index(ss.selected_teacher) if ss.selected_teacher in names else None
    selected = st.selectbox(
        "성함을 선택하여 배정된 정정 내역을 확인하세요.",
        options=names,
        index=index,
        format_func=lambda n: f"{n} ({counts[n]})" if n in counts else n,
        key="teacher_select",
    )
    ss.selected_teacher = selected or ""
    if not ss.selected_teacher:
        return

    mine = corrections_for_teacher(data.corrections, ss.selected_teacher)
    done = sum(1 for c in mine if c.is_completed)
    st.subheader(f"{ss.selected_teacher} 선생님의 정정 목록")
    st.caption(f"총 {len(mine)}건 중 {done}건 완료")

    if not mine:
        st.info("배정된 정정 내역이 없습니다.")
        return

    for c in mine:
        with st.container(border=True):
            col1, col2, col3 = st.columns([1, 5, 2])
            with col1:
                checked = st.checkbox("완료", value=c.is_completed, key=f"chk_{c.id}")
            with col2:
                st.markdown(f"**{c.student_id} {c.student_name}** · {c.grade_class} · {c.semester}학기")
                st.markdown(f"{c.subject_name}")
                st.write(f"기존: {c.before}")
                st.write(f"수정 후: {c.after}")
            with col3:
                if c.is_completed:
                    st.caption(f"정정 완료 일시\n{format_timestamp(c.completed_at)}")
                else:
                    st.caption("정정 대기 중...")
            if checked != c.is_completed:
                res = set_correction_status(repo, code, c.id, checked)
                if not res.ok:
                    show_result(res)
                else:
                    st.rerun()

    st.caption(
        "나이스(NEIS)에 수정을 완료하신 후 반드시 체크박스를 클릭해주세요. "
        "체크하시면 담임 선생님 페이지에도 완료 일시가 공유됩니다."
    )


# -------------------------
# router
# -------------------------
if not ss.workspace_code:
    render_home()
elif ss.page == "HOMEROOM":
    render_homeroom()
elif ss.page == "TEACHER":
    render_teacher()
elif ss.page == "DELETE_CONFIRM":
    render_delete_confirm()
else:
    render_select()
