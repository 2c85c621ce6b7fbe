import zipfile
from collections import namedtuple
from io import BytesIO

import openpyxl

from recordfix import excel_io
from recordfix.excel_io import detect_kind, read_sheet_rows
from recordfix.parser import parse_roster

XlsbCell = namedtuple("XlsbCell", "r c v")


class FakeXlsbSheet:
    def __init__(self, rows):
        self._rows = rows

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def rows(self):
        for r, values in enumerate(self._rows):
            yield [XlsbCell(r, c, v) for c, v in enumerate(values)]


class FakeXlsbWorkbook:
    def __init__(self, rows):
        self.sheets = ["Sheet1"]
        self._rows = rows

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def get_sheet(self, name):
        assert name == "Sheet1"
        return FakeXlsbSheet(self._rows)


def xlsb_like_bytes():
    buffer = BytesIO()
    with zipfile.ZipFile(buffer, "w") as zf:
        zf.writestr("[Content_Types].xml", "<Types/>")
        zf.writestr("xl/workbook.bin", b"\x00")
    return buffer.getvalue()


def test_xlsb_roster(monkeypatch):
    # xlsb 숫자 셀은 float 로 들어온다
    rows = [
        ["학번", "성명", "선택1", None],
        [20305.0, "홍길동", "B_지구과학_8반", None],
        [None, None, None, None],
        [10101.0, "김철수", "A_화학1_1반", "C_경제_2반"],
    ]
    monkeypatch.setattr(excel_io, "open_xlsb_workbook", lambda stream: FakeXlsbWorkbook(rows))
    data = xlsb_like_bytes()

    assert detect_kind(data) == "xlsb"
    assert read_sheet_rows(data)[2] == []

    students = parse_roster(data)
    assert [s.id for s in students] == ["20305", "10101"]
    assert (students[0].grade, students[0].class_num) == (2, 3)
    assert [e.class_num for e in students[1].electives] == ["1", "2"]


def test_read_only_fallback_workbook_is_closed(monkeypatch, make_xlsx):
    data = make_xlsx([["학번", "성명"], ["10101", "홍길동"]])
    real_load = openpyxl.load_workbook
    closed = []

    def flaky_load(stream, **kwargs):
        if not kwargs.get("read_only"):
            raise IndexError("list index out of range")
        wb = real_load(stream, **kwargs)
        orig_close = wb.close

        def close():
            closed.append(True)
            orig_close()

        wb.close = close
        return wb

    monkeypatch.setattr(excel_io, "load_workbook", flaky_load)

    assert read_sheet_rows(data) == [["학번", "성명"], ["10101", "홍길동"]]
    assert closed == [True]


def test_regular_workbook_rows(make_xlsx):
    data = make_xlsx([["a", None, "c"], [], [1]])
    assert read_sheet_rows(data) == [["a", None, "c"], [], [1]]
