# recordfix/excel_io.py
from __future__ import annotations

import re
import zipfile
import xml.etree.ElementTree as ET
from io import BytesIO
from typing import Any, Dict, List, Optional, Sequence

from openpyxl import Workbook, load_workbook
from openpyxl.styles import Font, PatternFill
from openpyxl.utils import get_column_letter
from openpyxl.worksheet.views import Selection
from pyxlsb import open_workbook as open_xlsb_workbook


# =========================
# 설정값(필요하면 여기만 수정)
# =========================
XLSX_MARKER = "xl/workbook.xml"
XLSB_MARKER = "xl/workbook.bin"

FILL_HEADER = PatternFill("solid", fgColor="D9D9D9")  # 회색


class ParseError(ValueError):
    """엑셀 파일 자체를 읽을 수 없을 때 (손상/형식 오류/시트 없음)."""


# ========== 읽기 ==========

def detect_kind(data: bytes) -> str:
    """
    바이트 내용으로 엑셀 종류 판별: 'xlsx' | 'xlsb'
    둘 다 zip 이라 확장자 대신 안쪽 workbook 파트 이름으로 구분한다.
    """
    if not data:
        raise ParseError("[오류] 빈 파일입니다.")
    try:
        with zipfile.ZipFile(BytesIO(data)) as zf:
            names = set(zf.namelist())
    except zipfile.BadZipFile as e:
        raise ParseError("[오류] 엑셀(.xlsx/.xlsb) 파일 형식이 아닙니다.") from e

    if XLSB_MARKER in names:
        return "xlsb"
    if XLSX_MARKER in names:
        return "xlsx"
    raise ParseError("[오류] 엑셀 통합문서 정보를 찾지 못했습니다. 파일이 손상되었을 수 있습니다.")


def _strip_custom_props(data: bytes) -> BytesIO:
    """docProps/custom.xml 에 이름 없는 속성이 있으면 openpyxl 이 죽어서 미리 제거."""
    buffer = BytesIO()
    with zipfile.ZipFile(BytesIO(data), "r") as zin, zipfile.ZipFile(
        buffer, "w", compression=zipfile.ZIP_DEFLATED
    ) as zout:
        for item in zin.infolist():
            if item.filename == "docProps/custom.xml":
                root = ET.fromstring(zin.read(item.filename))
                ns = "http://schemas.openxmlformats.org/officeDocument/2006/custom-properties"
                tag = f"{{{ns}}}property"
                for prop in list(root.findall(tag)):
                    name = prop.get("name")
                    if name is None or str(name).strip() == "":
                        root.remove(prop)
                new_xml = ET.tostring(root, encoding="utf-8", xml_declaration=True)
                zout.writestr(item, new_xml)
            else:
                zout.writestr(item, zin.read(item.filename))
    buffer.seek(0)
    return buffer


def safe_load_workbook(data: bytes, data_only: bool = True):
    try:
        return load_workbook(BytesIO(data), data_only=data_only)
    except TypeError as e:
        msg = str(e)
        if "openpyxl.packaging.custom" not in msg or "NoneType" not in msg:
            raise
        return load_workbook(_strip_custom_props(data), data_only=data_only)
    except IndexError:
        # 스타일 인덱스 꼬여서 나는 openpyxl 버그 회피용: read_only 로 다시 시도
        return load_workbook(BytesIO(data), data_only=data_only, read_only=True)


def _trim_row(values: Sequence[Any]) -> List[Any]:
    """행 끝쪽 빈 셀 제거 (실제 값이 있는 마지막 열까지만)."""
    out = list(values)
    while out and (out[-1] is None or (isinstance(out[-1], str) and out[-1] == "")):
        out.pop()
    return out


def _xlsb_cell_value(cell) -> Any:
    if cell is None:
        return None
    return getattr(cell, "v", None)


def _read_xlsb_rows(data: bytes) -> List[List[Any]]:
    with open_xlsb_workbook(BytesIO(data)) as wb:
        sheetnames = list(wb.sheets)
        if not sheetnames:
            raise ParseError("[오류] 엑셀 파일에 시트가 없습니다.")
        with wb.get_sheet(sheetnames[0]) as sh:
            return [_trim_row([_xlsb_cell_value(c) for c in row]) for row in sh.rows()]


def _read_xlsx_rows(data: bytes) -> List[List[Any]]:
    wb = safe_load_workbook(data, data_only=True)
    try:
        if not wb.worksheets:
            raise ParseError("[오류] 엑셀 파일에 시트가 없습니다.")
        ws = wb.worksheets[0]
        return [_trim_row(row) for row in ws.iter_rows(min_row=1, min_col=1, values_only=True)]
    finally:
        # read_only 로 열린 경우 파일 핸들을 잡고 있음
        if getattr(wb, "read_only", False):
            wb.close()


def read_sheet_rows(data: bytes) -> List[List[Any]]:
    """
    첫 번째 시트를 행 배열 그대로 읽는다.
    - rows[0] = 엑셀 1행
    - 빈 행도 자리는 유지(빈 리스트) → 행 번호 기준 앵커가 밀리지 않음
    - 각 행 끝의 빈 셀은 잘라냄
    """
    kind = detect_kind(data)
    try:
        if kind == "xlsb":
            return _read_xlsb_rows(data)
        return _read_xlsx_rows(data)
    except ParseError:
        raise
    except Exception as e:
        raise ParseError(f"[오류] 엑셀 파일을 읽는 중 문제가 발생했습니다: {e}") from e


def header_key(val: Any) -> str:
    """
    엑셀 헤더 셀 정규화:
    - None → ""
    - nbsp/공백/줄바꿈 제거
    """
    if val is None:
        return ""
    s = str(val).replace("\u00A0", " ")
    return re.sub(r"\s+", "", s)


def read_sheet_records(data: bytes) -> List[Dict[str, Any]]:
    """
    첫 번째 시트를 1행 헤더 기준 dict 목록으로 읽는다.
    - key 는 header_key() 로 정규화된 헤더
    - 값이 없는 셀은 key 자체가 없음
    - 완전히 빈 행은 제외
    """
    rows = read_sheet_rows(data)
    if not rows:
        return []

    headers = [header_key(h) for h in rows[0]]
    records: List[Dict[str, Any]] = []
    for row in rows[1:]:
        rec: Dict[str, Any] = {}
        for idx, v in enumerate(row):
            if idx >= len(headers) or not headers[idx]:
                continue
            if v is None or (isinstance(v, str) and v.strip() == ""):
                continue
            rec[headers[idx]] = v
        if rec:
            records.append(rec)
    return records


# ========== 쓰기 ==========

def write_text_cell(ws, row: int, col: int, value: Any):
    """
    값은 그대로 문자열로 넣고, 셀 타입/서식은 텍스트로 강제.
    - 학번 01, 10101 같은 것들 숫자로 안 바뀌게 막기 위함.
    """
    cell = ws.cell(row=row, column=col)
    cell.value = "" if value is None else str(value)
    cell.data_type = "s"
    cell.number_format = "@"
    return cell


def reset_view_to_a1(wb):
    """
    - 모든 시트: 화면은 A1, 커서는 A2, 1행 고정
    - 통합문서: 첫 번째 시트만 선택 + 활성
    """
    for ws in wb.worksheets:
        sv = ws.sheet_view
        sv.topLeftCell = "A1"
        sv.activeCell = "A2"
        sv.selection = [Selection(activeCell="A2", sqref="A2")]
        ws.freeze_panes = "A2"
        if hasattr(sv, "tabSelected"):
            sv.tabSelected = False

    first_ws = wb.worksheets[0]
    if hasattr(first_ws.sheet_view, "tabSelected"):
        first_ws.sheet_view.tabSelected = True
    wb.active = 0


def build_sheet_bytes(
    sheet_title: str,
    headers: Sequence[str],
    rows: Sequence[Sequence[Any]],
    col_widths: Optional[Dict[str, int]] = None,
) -> bytes:
    """헤더 + 데이터 행으로 단일 시트 xlsx 를 만들어 bytes 로 반환."""
    wb = Workbook()
    ws = wb.active
    ws.title = sheet_title

    for c, h in enumerate(headers, start=1):
        cell = write_text_cell(ws, 1, c, h)
        cell.font = Font(bold=True)
        cell.fill = FILL_HEADER

    for r, values in enumerate(rows, start=2):
        for c, v in enumerate(values, start=1):
            write_text_cell(ws, r, c, v)

    for c, h in enumerate(headers, start=1):
        width = (col_widths or {}).get(h)
        if width:
            ws.column_dimensions[get_column_letter(c)].width = width

    reset_view_to_a1(wb)

    buffer = BytesIO()
    wb.save(buffer)
    return buffer.getvalue()
