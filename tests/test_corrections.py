from datetime import datetime

import pytest

from recordfix.corrections import (
    DONE_LABEL,
    EXPORT_HEADERS,
    PENDING_LABEL,
    build_correction_export,
    build_roster_sample,
    class_labels,
    correction_export_rows,
    corrections_for_teacher,
    create_correction,
    export_file_name,
    filter_by_class,
    new_correction_id,
    parse_grade_class_label,
    pending_counts,
    set_completion,
    students_in_class,
    teacher_names,
    toggle_completion,
)
from recordfix.excel_io import read_sheet_rows
from recordfix.models import Student, TimetableEntry
from recordfix.parser import parse_correction_backup, parse_elective_token, parse_roster
from recordfix.resolver import UNRESOLVED_TEACHER_LABEL, available_subjects

NOW = datetime(2026, 4, 1, 8, 30, 0)

TIMETABLE = [
    TimetableEntry("김지구", 2, "지구과학Ⅰ", "8"),
    TimetableEntry("박국어", 2, "국어", "3"),
]


@pytest.fixture
def student():
    return Student(
        id="20305",
        name="홍길동",
        grade=2,
        class_num=3,
        electives=[parse_elective_token("B_지구과학_8반"), parse_elective_token("A_미술_2반")],
    )


@pytest.fixture
def subjects(student):
    return available_subjects(student, TIMETABLE, [])


def test_create_correction(student, subjects):
    c = create_correction("ROOM1", student, subjects[0], " 전 ", "후", 1, TIMETABLE, now=NOW)

    assert c.id.startswith("20305_")
    assert c.workspace_code == "ROOM1"
    assert c.student_name == "홍길동"
    assert c.grade_class == "2학년 3반"
    assert c.subject_key == "ELECTIVE_B_지구과학_8반"
    assert c.subject_name == "B_지구과학_8반"
    assert (c.before, c.after) == ("전", "후")
    assert c.teachers == ["김지구"]
    assert c.created_at == NOW
    assert c.is_completed is False
    assert c.completed_at is None


def test_create_correction_common_subject_label(student, subjects):
    korean = next(a for a in subjects if a.key == "COMMON_국어")
    c = create_correction("ROOM1", student, korean, "a", "b", 2, TIMETABLE, now=NOW)
    assert c.subject_name == "[공통] 국어"
    assert c.teachers == ["박국어"]
    assert c.semester == 2


def test_create_correction_unresolved_teacher_stored_empty(student, subjects):
    art = next(a for a in subjects if a.subject_name == "미술")
    c = create_correction("ROOM1", student, art, "a", "b", 1, TIMETABLE, now=NOW)
    assert c.teachers == []
    assert UNRESOLVED_TEACHER_LABEL not in c.to_dict()["teachers"]


@pytest.mark.parametrize("before, after", [("", "b"), ("a", "  "), (None, "b")])
def test_create_correction_requires_before_and_after(student, subjects, before, after):
    with pytest.raises(ValueError):
        create_correction("ROOM1", student, subjects[0], before, after, 1, TIMETABLE, now=NOW)


def test_create_correction_rejects_bad_semester(student, subjects):
    with pytest.raises(ValueError):
        create_correction("ROOM1", student, subjects[0], "a", "b", 3, TIMETABLE, now=NOW)


def test_new_correction_ids_are_unique():
    ids = {new_correction_id("20305", NOW) for _ in range(50)}
    assert len(ids) == 50


def test_set_and_toggle_completion(student, subjects):
    c = create_correction("ROOM1", student, subjects[0], "a", "b", 1, TIMETABLE, now=NOW)
    done_at = datetime(2026, 4, 2, 10, 0, 0)

    set_completion(c, True, now=done_at)
    assert c.is_completed is True
    assert c.completed_at == done_at

    toggle_completion(c)
    assert c.is_completed is False
    assert c.completed_at is None

    toggle_completion(c, now=done_at)
    assert c.is_completed is True
    assert c.completed_at == done_at


def test_teacher_queries(student, subjects):
    c1 = create_correction("R", student, subjects[0], "a", "b", 1, TIMETABLE, now=NOW)
    c2 = create_correction("R", student, subjects[2], "a", "b", 1, TIMETABLE, now=NOW)
    other = Student(id="20101", name="김철수", grade=2, class_num=1, electives=[parse_elective_token("B_지구과학_8반")])
    c3 = create_correction("R", other, available_subjects(other, TIMETABLE, [])[0], "a", "b", 1, TIMETABLE, now=NOW)
    set_completion(c1, True, now=NOW)

    corrections = [c1, c2, c3]
    assert teacher_names(TIMETABLE + [TimetableEntry("", 2, "x", "1")]) == ["김지구", "박국어"]
    assert [c.student_id for c in corrections_for_teacher(corrections, "김지구")] == ["20101", "20305"]
    assert pending_counts(corrections, ["김지구", "박국어", "없는교사"]) == {"김지구": 1, "박국어": 1}


def test_teacher_match_ignores_spacing(student, subjects):
    c = create_correction("R", student, subjects[0], "a", "b", 1, TIMETABLE, now=NOW)
    c.teachers = ["김 지구"]
    assert corrections_for_teacher([c], "김지구") == [c]
    assert pending_counts([c], ["김지구"]) == {"김지구": 1}


def test_class_labels_sorted_numerically():
    students = [
        Student(id="21001", name="a", grade=2, class_num=10),
        Student(id="20201", name="b", grade=2, class_num=2),
        Student(id="10301", name="c", grade=1, class_num=3),
        Student(id="20202", name="d", grade=2, class_num=2),
    ]
    labels = class_labels(students)
    assert labels == ["1학년 3반", "2학년 2반", "2학년 10반"]
    assert [s.id for s in students_in_class(students, "2학년 2반")] == ["20201", "20202"]
    assert students_in_class(students, "엉뚱한 값") == []
    assert parse_grade_class_label("2학년 10반") == (2, 10)
    assert parse_grade_class_label("2-10") is None


def test_filter_by_class(student, subjects):
    c = create_correction("R", student, subjects[0], "a", "b", 1, TIMETABLE, now=NOW)
    assert filter_by_class([c], "2학년 3반") == [c]
    assert filter_by_class([c], "2학년 4반") == []


def test_export_rows(student, subjects):
    c = create_correction("R", student, subjects[0], "a", "b", 2, TIMETABLE, now=NOW)
    pending = correction_export_rows([c])
    assert pending == [["2", "20305", "홍길동", "B_지구과학_8반", "김지구", "a", "b", PENDING_LABEL, ""]]

    set_completion(c, True, now=datetime(2026, 4, 3, 14, 5, 9))
    (row,) = correction_export_rows([c])
    assert row[7] == DONE_LABEL
    assert row[8] == "2026-04-03 14:05:09"


def test_export_reimports_as_pending(student, subjects):
    c1 = create_correction("R", student, subjects[0], "전", "후", 2, TIMETABLE, now=NOW)
    c2 = create_correction("R", student, subjects[2], "x", "y", 1, TIMETABLE, now=NOW)
    c1.teachers = ["김지구", "이지구"]
    set_completion(c1, True, now=NOW)

    data = build_correction_export([c1, c2])
    assert read_sheet_rows(data)[0] == EXPORT_HEADERS

    back = parse_correction_backup(data, "R2", now=NOW)
    assert [(c.student_id, c.student_name, c.subject_name, c.before, c.after, c.semester) for c in back] == [
        ("20305", "홍길동", "B_지구과학_8반", "전", "후", 2),
        ("20305", "홍길동", "[공통] 국어", "x", "y", 1),
    ]
    assert back[0].teachers == ["김지구", "이지구"]
    assert all(not c.is_completed and c.completed_at is None for c in back)
    assert {c.id for c in back}.isdisjoint({c1.id, c2.id})


def test_export_keeps_student_id_as_text():
    s = Student(id="01234", name="영", grade=0, class_num=12)
    subject = available_subjects(
        Student(id=s.id, name=s.name, grade=s.grade, class_num=s.class_num, electives=[parse_elective_token("A_국어_1반")]),
        [],
        [],
    )[0]
    c = create_correction("R", s, subject, "a", "b", 1, [], now=NOW)

    rows = read_sheet_rows(build_correction_export([c]))
    assert rows[1][1] == "01234"


def test_export_empty():
    assert read_sheet_rows(build_correction_export([])) == [EXPORT_HEADERS]


def test_export_file_name():
    assert export_file_name("2학년 3반") == "2학년 3반_정정내역_백업.xlsx"
    assert export_file_name() == "전체학급_정정내역_백업.xlsx"


def test_roster_sample_parses():
    students = parse_roster(build_roster_sample())
    assert [s.id for s in students] == ["10101", "10102"]
    assert [len(s.electives) for s in students] == [4, 4]
    assert students[0].electives[1].subject_name == "지구과학1"
