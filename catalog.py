"""CMF 선택지 (소재, 마감, 기본 색상)."""

import re

MATERIALS = [
    "플라스틱",
    "브러시드 알루미늄",
    "폴리시드 크롬",
    "소프트터치 러버",
    "반투명 유리",
    "재활용 패브릭",
]

FINISHES = [
    "무광",
    "유광",
    "반광",
    "소프트 터치",
    "아노다이징",
]

DEFAULT_COLOR = "#007aff"

# 2024-2025 트렌드 컬러
TREND_COLORS = [
    "#FF6B35",
    "#2E8B57",
    "#4A90E2",
    "#8E44AD",
    "#F39C12",
    "#E74C3C",
    "#1ABC9C",
    "#34495E",
]

MAX_IMAGES = 3
MAX_PAIRS = 3

HEX_COLOR_RE = re.compile(r"^#[0-9A-Fa-f]{6}$")


def is_hex_color(value) -> bool:
    return isinstance(value, str) and bool(HEX_COLOR_RE.match(value))

# 디자인 모드: 제품 사진 리디자인 / 설계도(스케치) → CMF 렌더링
REDESIGN = "redesign"
BLUEPRINT = "blueprint"
DESIGN_MODES = (REDESIGN, BLUEPRINT)
