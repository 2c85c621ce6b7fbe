from io import BytesIO

import pytest
from openpyxl import Workbook


def build_xlsx(rows, merges=None, title="Sheet1"):
    wb = Workbook()
    ws = wb.active
    ws.title = title
    for r, values in enumerate(rows, start=1):
        for c, v in enumerate(values, start=1):
            if v is not None:
                ws.cell(row=r, column=c, value=v)
    for rng in merges or []:
        ws.merge_cells(rng)
    buffer = BytesIO()
    wb.save(buffer)
    return buffer.getvalue()


@pytest.fixture
def make_xlsx():
    return build_xlsx


@pytest.fixture
def timetable_bytes():
    # 2행 학년(E2~, 병합), 3행 반(E3~), 4행~ B열 과목 / D열 교사 / E열~ 시수
    rows = [
        ["교사별 시수표"],
        [None, None, None, None, "1학년", None, "2학년", None],
        [None, None, None, None, "1반", "2반", "1반", "3반"],
        [1, "지구과학Ⅰ", None, "김지구", 2, None, 3, "x"],
        [2, "화학", None, "이화학", None, 2, None, None],
        [3, "지구과학Ⅰ", None, "김지구", 1, None, None, None],
        [4, None, None, "박빈칸", 1],
        [5, "국어", None, "최국어", "3", "0", None, 2],
    ]
    return build_xlsx(rows, merges=["E2:F2", "G2:H2"])


@pytest.fixture
def roster_bytes():
    rows = [
        ["학번", "성명", "선택1", "선택2", "선택3"],
        ["20305", "홍길동", "B_지구과학_8반", "A_화학1_1반", None],
        [None, "이름만"],
        ["20306", None, "A_물리학_2반"],
        [20307, "김철수", "잘못된토큰", "C_경제_3반", "D_심화_국어_2반"],
    ]
    return build_xlsx(rows)
