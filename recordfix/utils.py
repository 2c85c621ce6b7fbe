# recordfix/utils.py
import re
import unicodedata
from typing import Any, Optional, Tuple


def normalize_text(s: Optional[str]) -> str:
    """
    OS 독립적 문자열 비교를 위한 정규화

    1) NFC 정규화 (Mac/Windows 차이 제거)
    2) 앞뒤 공백 제거
    3) 내부 공백 제거
    4) 소문자 변환 (영문 대비)
    """
    if s is None:
        return ""
    s = unicodedata.normalize("NFC", str(s))
    s = re.sub(r"\s+", "", s)
    return s.lower()


def text_eq(a: Optional[str], b: Optional[str]) -> bool:
    return normalize_text(a) == normalize_text(b)


# 로마숫자 치환: 긴 것부터 (III -> II -> I)
_ROMAN_RULES = [
    (re.compile(r"Ⅲ|III", re.IGNORECASE), "3"),
    (re.compile(r"Ⅱ|II", re.IGNORECASE), "2"),
    (re.compile(r"Ⅰ|I", re.IGNORECASE), "1"),
]
_SUBJECT_SEPARATORS_RE = re.compile(r"[·./()_\-]")


def normalize_subject_name(name: Optional[str]) -> str:
    """
    과목명을 비교하기 좋게 정규화합니다.
    공백 제거, 로마숫자 통일, 구분자/괄호 제거.

    예) '지구과학 I' / '지구과학Ⅰ' / '지구과학1' -> '지구과학1'
    """
    if not name:
        return ""
    s = unicodedata.normalize("NFC", str(name))
    s = re.sub(r"\s+", "", s)
    for pattern, digit in _ROMAN_RULES:
        s = pattern.sub(digit, s)
    s = _SUBJECT_SEPARATORS_RE.sub("", s)
    return s.strip()


def is_same_subject(name_a: Optional[str], name_b: Optional[str]) -> bool:
    """
    두 과목명이 실질적으로 동일하거나 포함 관계인지 판단합니다.
    예) '지구과학' vs '지구과학 I' -> True

    포함 관계 기준이라 '사' 처럼 짧은 이름은 '사회', '역사' 모두와 같다고 판정된다.
    """
    norm_a = normalize_subject_name(name_a)
    norm_b = normalize_subject_name(name_b)
    if not norm_a or not norm_b:
        return False
    return norm_a in norm_b or norm_b in norm_a


def parse_grade_class(student_id: Any) -> Tuple[int, int]:
    """
    학번에서 (학년, 반)을 추출.
    숫자만 남긴 뒤 첫 자리 = 학년, 다음 두 자리 = 반.
      '20305' -> (2, 3)
      '10101' -> (1, 1)
    자릿수가 모자라면 없는 쪽은 0.
    """
    digits = re.sub(r"\D", "", cell_text(student_id))
    grade = int(digits[:1]) if digits[:1] else 0
    class_num = int(digits[1:3]) if digits[1:3] else 0
    return grade, class_num


def format_grade_class(grade: int, class_num: int) -> str:
    return f"{grade}학년 {class_num}반"


def first_digits(value: Any) -> str:
    """문자열에서 처음 나오는 숫자 묶음. 없으면 ''."""
    m = re.search(r"\d+", cell_text(value))
    return m.group(0) if m else ""


def cell_text(value: Any) -> str:
    """
    셀 값 -> 앞뒤 공백 없는 문자열.
    - None -> ''
    - 20305.0 같은 정수형 float -> '20305' (xlsb/수식 셀 대응)
    """
    if value is None:
        return ""
    if isinstance(value, bool):
        return str(value)
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()
