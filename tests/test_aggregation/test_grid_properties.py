"""
Property tests for grid aggregation.

Covers:
- Person counts are conserved by binning for in-bounds points
- Cell and movement histories never exceed their bounds
- Every binned index lies inside the grid
"""

import asyncio

from hypothesis import given, settings, strategies as st

from crowdcast.aggregation.aggregator import GridAggregator
from crowdcast.aggregation.geo import BoundingBox, cell_index
from crowdcast.aggregation.schemas import CrowdDataPoint

BOUNDS = BoundingBox(north=37.7800, south=37.7700, east=-122.4100, west=-122.4300)

in_bounds_points = st.builds(
    dict,
    lat=st.floats(min_value=BOUNDS.south, max_value=BOUNDS.north),
    lng=st.floats(min_value=BOUNDS.west, max_value=BOUNDS.east),
    personCount=st.integers(min_value=0, max_value=20),
    density=st.floats(min_value=0.0, max_value=10.0),
)


@given(points=st.lists(in_bounds_points, max_size=60), resolution=st.integers(1, 25))
@settings(max_examples=50, deadline=None)
def test_person_count_conserved(points, resolution):
    agg = GridAggregator(bounds=BOUNDS, resolution=resolution)
    cycle = asyncio.run(agg.ingest(points))

    expected = sum(p["personCount"] for p in points)
    assert sum(cell.person_count for cell in cycle.grid.values()) == expected
    assert cycle.metrics.total_people == expected
    assert cycle.point_count == len(points)


@given(
    lat=st.floats(min_value=BOUNDS.south, max_value=BOUNDS.north),
    lng=st.floats(min_value=BOUNDS.west, max_value=BOUNDS.east),
    resolution=st.integers(1, 50),
)
def test_index_within_grid(lat, lng, resolution):
    x, y = cell_index(CrowdDataPoint(lat=lat, lng=lng), BOUNDS, resolution)
    assert 0 <= x < resolution
    assert 0 <= y < resolution


@given(cycles=st.integers(min_value=1, max_value=40))
@settings(max_examples=20, deadline=None)
def test_histories_bounded(cycles):
    agg = GridAggregator(bounds=BOUNDS, resolution=2)
    point = {"lat": 37.775, "lng": -122.42}

    async def run():
        for _ in range(cycles):
            await agg.ingest([point])

    asyncio.run(run())

    assert all(len(cell.history) <= 20 for cell in agg.grid.cells.values())
    assert all(len(record.samples) <= 10 for record in agg.movement._records.values())
