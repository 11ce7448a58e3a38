"""距离与限速解析单元测试"""

import pytest
from hypothesis import given
from hypothesis import strategies as st

from geo.geometry import (
    haversine_distance_m,
    kph_to_mph,
    mps_to_mph,
    parse_maxspeed_to_mph,
)

latitudes = st.floats(min_value=-89.0, max_value=89.0)
longitudes = st.floats(min_value=-179.0, max_value=179.0)


class TestHaversine:
    def test_same_point(self):
        assert haversine_distance_m(51.5, -0.12, 51.5, -0.12) == 0

    def test_small_step_on_equator(self):
        # 赤道上 0.001 度约 111 米
        d = haversine_distance_m(0, 0, 0, 0.001)
        assert d == pytest.approx(111.19, abs=0.05)

    def test_speed_from_step(self):
        d = haversine_distance_m(0, 0, 0, 0.001)
        assert mps_to_mph(d / 10) == pytest.approx(24.87, abs=0.05)

    @given(lat1=latitudes, lon1=longitudes, lat2=latitudes, lon2=longitudes)
    def test_symmetric(self, lat1, lon1, lat2, lon2):
        a = haversine_distance_m(lat1, lon1, lat2, lon2)
        b = haversine_distance_m(lat2, lon2, lat1, lon1)
        assert a == pytest.approx(b, rel=1e-9, abs=1e-6)
        assert a >= 0


class TestUnits:
    def test_mps_to_mph(self):
        assert mps_to_mph(10) == pytest.approx(22.3693629)

    def test_kph_to_mph(self):
        assert kph_to_mph(100) == pytest.approx(62.1371)


class TestParseMaxspeed:
    def test_bare_number_is_kph(self):
        assert parse_maxspeed_to_mph("50") == pytest.approx(31.07, abs=0.01)

    def test_kph_suffix(self):
        assert parse_maxspeed_to_mph("50 km/h") == pytest.approx(31.07, abs=0.01)

    def test_mph(self):
        assert parse_maxspeed_to_mph("30 mph") == 30

    def test_none(self):
        assert parse_maxspeed_to_mph("none") is None

    def test_garbage(self):
        assert parse_maxspeed_to_mph("signals") is None

    def test_not_string(self):
        assert parse_maxspeed_to_mph(None) is None
