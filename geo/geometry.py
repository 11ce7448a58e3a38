"""距离与单位换算工具"""

import math
import re
from typing import Optional

EARTH_RADIUS_M = 6371000.0

MPS_TO_MPH = 2.23693629
KPH_TO_MPH = 0.621371

# 与 JavaScript parseFloat 一致：只取开头的数字部分
_LEADING_NUMBER_RE = re.compile(r"^[+-]?(\d+(\.\d*)?|\.\d+)")


def haversine_distance_m(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """球面近似下两点间的大圆距离（米）。"""
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)

    a = (
        math.sin(d_phi / 2) ** 2
        + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_M * c


def mps_to_mph(mps: float) -> float:
    return mps * MPS_TO_MPH


def kph_to_mph(kph: float) -> float:
    return kph * KPH_TO_MPH


def parse_maxspeed_to_mph(value: str) -> Optional[float]:
    """
    解析 OSM maxspeed 标签。

    例: "50" -> 按 km/h 换算, "50 km/h" -> 按 km/h 换算, "30 mph" -> 30, "none" -> None

    Returns:
        mph；无限速或无法解析时返回 None
    """
    if not isinstance(value, str):
        return None
    v = value.strip().lower()
    if v == "none":
        return None
    match = _LEADING_NUMBER_RE.match(v)
    if match is None:
        return None
    number = float(match.group(0))
    if "mph" in v:
        return number
    # 未标注单位时按 km/h 处理
    return kph_to_mph(number)
