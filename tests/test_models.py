"""
Tests for data models and coordinate geometry.

Covers:
- Axis-order conversion and ring closing
- Geodesic area
- SystemConfig sizing bounds
- Record serialization
"""

from datetime import date

import pytest

from solarscope.core.coordinates import (
    close_ring,
    contains_point,
    haversine_distance_m,
    polygon_area_m2,
    ring_centroid,
    swap_axes,
)
from solarscope.core.models import (
    Coordinate,
    FinancialInputs,
    FinancialSummary,
    ImageryQuality,
    IrradiationResult,
    LayerInfo,
    Polygon,
    PolygonSource,
    SystemConfig,
    catalog_to_dict,
    count_layers,
    parse_provider_date,
)

from .conftest import SITE_LAT, SITE_LNG, square_ring_latlng, square_ring_lnglat


class TestCoordinates:
    """Tests for geometry helpers."""

    def test_swap_axes_roundtrip(self):
        ring = [[-23.5, -46.6], [-23.4, -46.5]]
        assert swap_axes(swap_axes(ring)) == [(-23.5, -46.6), (-23.4, -46.5)]

    def test_close_ring_appends_first_vertex(self):
        closed = close_ring([[0, 0], [1, 0], [1, 1]])
        assert closed[0] == closed[-1]
        assert len(closed) == 4

    def test_close_ring_keeps_closed_ring(self):
        assert len(close_ring([[0, 0], [1, 0], [1, 1], [0, 0]])) == 4

    def test_area_of_small_square(self):
        """~22 m x ~20 m square near São Paulo."""
        area = polygon_area_m2(square_ring_lnglat())
        assert 400 < area < 500

    def test_area_ignores_winding(self):
        ring = square_ring_lnglat()
        assert polygon_area_m2(ring) == pytest.approx(polygon_area_m2(list(reversed(ring))))

    def test_area_degenerate(self):
        assert polygon_area_m2([[0, 0], [1, 1]]) == 0.0

    def test_contains_point(self):
        ring = square_ring_lnglat()
        assert contains_point(ring, SITE_LAT, SITE_LNG)
        assert not contains_point(ring, SITE_LAT + 0.01, SITE_LNG)

    def test_centroid(self):
        lng, lat = ring_centroid(square_ring_lnglat())
        assert lat == pytest.approx(SITE_LAT)
        assert lng == pytest.approx(SITE_LNG)

    def test_haversine(self):
        # One degree of latitude is ~111 km
        assert haversine_distance_m(0, 0, 1, 0) == pytest.approx(111_195, rel=1e-3)
        assert haversine_distance_m(SITE_LAT, SITE_LNG, SITE_LAT, SITE_LNG) == 0


class TestPolygon:
    """Tests for the Polygon model."""

    def test_from_latlng_stores_lng_first(self):
        polygon = Polygon.from_latlng(square_ring_latlng(), PolygonSource.USER_DRAWN)
        assert polygon.ring[0] == tuple(square_ring_lnglat()[0])

    def test_ring_is_closed(self):
        polygon = Polygon.from_latlng(square_ring_latlng(), PolygonSource.USER_DRAWN)
        assert polygon.ring[0] == polygon.ring[-1]
        assert len(polygon.ring) == 5

    def test_to_latlng_roundtrip(self):
        ring = square_ring_latlng()
        polygon = Polygon.from_latlng(ring, PolygonSource.USER_DRAWN)
        assert polygon.to_latlng()[:4] == [list(map(float, p)) for p in ring]

    def test_area_matches_helper(self):
        polygon = Polygon(ring=tuple(map(tuple, square_ring_lnglat())), source=PolygonSource.BUILDING_FOOTPRINT_DB)
        assert polygon.area_m2 == pytest.approx(polygon_area_m2(square_ring_lnglat()))

    def test_rejects_too_few_vertices(self):
        with pytest.raises(ValueError):
            Polygon(ring=((0.0, 0.0), (1.0, 1.0)), source=PolygonSource.USER_DRAWN)

    def test_rejects_repeated_vertex(self):
        with pytest.raises(ValueError):
            Polygon(ring=((0.0, 0.0), (0.0, 0.0), (1.0, 1.0), (0.0, 0.0)), source=PolygonSource.USER_DRAWN)

    def test_source_from_string(self):
        polygon = Polygon.from_latlng(square_ring_latlng(), "user-drawn")
        assert polygon.source is PolygonSource.USER_DRAWN

    def test_geojson(self):
        polygon = Polygon.from_latlng(square_ring_latlng(), PolygonSource.USER_DRAWN)
        geojson = polygon.to_geojson()
        assert geojson["type"] == "Polygon"
        assert geojson["coordinates"][0][0] == list(polygon.ring[0])


class TestCoordinate:

    def test_out_of_range(self):
        with pytest.raises(ValueError):
            Coordinate(91, 0)
        with pytest.raises(ValueError):
            Coordinate(0, 181)

    def test_to_dict(self):
        assert Coordinate(1.5, 2.5).to_dict() == {"lat": 1.5, "lng": 2.5}


class TestSystemConfig:
    """Tests for PV system sizing."""

    def test_scenario_area(self):
        system = SystemConfig.size(40, 550, 2.58, 0.8, 0.215)
        assert system.panel_count == 12
        assert system.occupied_area_m2 <= 32
        assert system.system_power_kwp == pytest.approx(6.6)
        assert system.module_efficiency_percent == 21.5

    @pytest.mark.parametrize("area", [0, 3.2, 8, 25.8 / 0.8, 40, 60, 123.45, 1000])
    def test_occupied_never_exceeds_usable(self, area):
        system = SystemConfig.size(area, 550, 2.58, 0.8, 0.215)
        assert system.occupied_area_m2 <= area * 0.8 + 1e-9
        assert system.occupied_area_m2 <= area or area == 0

    def test_largest_count_that_fits(self):
        system = SystemConfig.size(100, 550, 2.58, 0.8, 0.215)
        assert system.occupied_area_m2 + 2.58 > 80

    def test_exact_multiple(self):
        system = SystemConfig.size(2.58 * 10 / 0.8, 550, 2.58, 0.8, 0.215)
        assert system.panel_count in (9, 10)
        assert system.occupied_area_m2 <= 2.58 * 10 / 0.8 * 0.8 + 1e-9

    def test_zero_area(self):
        system = SystemConfig.size(0, 550, 2.58, 0.8, 0.215)
        assert system.panel_count == 0
        assert system.power_density_w_m2 == 0

    def test_to_dict_keys(self):
        data = SystemConfig.size(40, 550, 2.58, 0.8, 0.215).to_dict()
        assert data["panel_count"] == 12
        assert data["panel_power_watts"] == 550
        assert data["system_power_kwp"] == 6.6

    def test_max_panels_caps_count(self):
        system = SystemConfig.size(40, 550, 2.58, 0.8, 0.215, max_panels=4)
        assert system.panel_count == 4
        assert system.system_power_kwp == pytest.approx(2.2)

    def test_max_panels_never_raises_count(self):
        system = SystemConfig.size(40, 550, 2.58, 0.8, 0.215, max_panels=100)
        assert system.panel_count == 12


class TestFinancials:
    """Tests for payback, NPV and ROI."""

    def test_growing_savings(self):
        inputs = FinancialInputs(
            energy_cost_per_kwh=1.0,
            installation_cost_per_watt=5.0,
            lifetime_years=2,
            energy_cost_increase_percent=10,
            discount_rate_percent=0,
        )
        summary = FinancialSummary.calculate(1000, 1000, inputs)

        assert summary.total_system_cost == 5000
        assert summary.annual_savings == 1000
        assert summary.simple_payback_years == 5
        assert summary.total_lifetime_savings == pytest.approx(2100)
        assert summary.npv == pytest.approx(-2900)
        assert summary.roi_percent == pytest.approx(-58)

    def test_discounted_npv(self):
        inputs = FinancialInputs(1.0, 5.0, lifetime_years=2, energy_cost_increase_percent=10, discount_rate_percent=10)
        summary = FinancialSummary.calculate(1000, 1000, inputs)
        assert summary.npv == pytest.approx(-3181.82, abs=0.01)

    def test_incentives_reduce_net_cost(self):
        summary = FinancialSummary.calculate(1000, 1000, FinancialInputs(1.0, 5.0, incentives_percent=20))
        assert summary.net_system_cost == pytest.approx(4000)
        assert summary.simple_payback_years == pytest.approx(4)

    def test_no_production_has_no_payback(self):
        summary = FinancialSummary.calculate(0, 1000, FinancialInputs(1.0, 5.0))
        assert summary.simple_payback_years is None
        assert summary.to_dict()["simple_payback_years"] is None

    def test_full_incentive_has_no_roi(self):
        summary = FinancialSummary.calculate(1000, 1000, FinancialInputs(1.0, 5.0, incentives_percent=100))
        assert summary.roi_percent is None
        assert summary.to_dict()["roi"] is None

    @pytest.mark.parametrize("kwargs", [
        {"energy_cost_per_kwh": 0, "installation_cost_per_watt": 5},
        {"energy_cost_per_kwh": 1, "installation_cost_per_watt": -1},
        {"energy_cost_per_kwh": 1, "installation_cost_per_watt": 5, "incentives_percent": 120},
        {"energy_cost_per_kwh": 1, "installation_cost_per_watt": 5, "lifetime_years": 0},
    ])
    def test_invalid_inputs(self, kwargs):
        with pytest.raises(ValueError):
            FinancialInputs(**kwargs)


class TestIrradiationResult:

    def test_requires_positive_irradiation(self):
        with pytest.raises(ValueError):
            IrradiationResult(annual_irradiation=0, source="x")

    def test_shading_is_clipped(self):
        result = IrradiationResult(annual_irradiation=1500, source="x", shading_index=1.7)
        assert result.shading_index == 1.0

    def test_layer_count_includes_hourly(self):
        layer = LayerInfo(name="dsm", url="u", title="t")
        result = IrradiationResult(
            annual_irradiation=1500,
            source="x",
            layers={"dsm": layer, "hourlyShade": [layer, layer]},
        )
        assert result.layer_count == 3

    def test_count_layers_on_serialized_catalog(self):
        catalog = {"rgb": {"url": "u"}, "hourlyShade": [{"hour": 0}, {"hour": 1}]}
        assert count_layers(catalog) == 3
        assert count_layers({}) == 0


class TestLayerCatalog:

    def test_catalog_to_dict(self):
        layer = LayerInfo(name="rgb", url="https://x/rgb.tif", title="RGB", date=date(2023, 4, 12), pixel_size_m=0.1)
        hourly = LayerInfo(name="hourlyShade", url="https://x/h0.tif", title="H0", hour=0)
        catalog = catalog_to_dict({"rgb": layer, "hourlyShade": [hourly]})

        assert catalog["rgb"]["metadata"] == {"date": {"year": 2023, "month": 4, "day": 12}, "pixelSize": 0.1}
        assert catalog["hourlyShade"][0]["hour"] == 0

    def test_parse_provider_date(self):
        assert parse_provider_date({"year": 2022, "month": 7, "day": 3}) == date(2022, 7, 3)
        assert parse_provider_date({"year": 2022}) == date(2022, 1, 1)
        assert parse_provider_date(None) is None
        assert parse_provider_date({"year": 2022, "month": 13}) is None

    def test_quality_ordering(self):
        assert ImageryQuality.HIGH.rank > ImageryQuality.MEDIUM.rank > ImageryQuality.LOW.rank
        assert ImageryQuality.HIGH.lower() is ImageryQuality.MEDIUM
        assert ImageryQuality.LOW.lower() is None
