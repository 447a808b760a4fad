import pytest

from vision_telemetry.bus import InMemoryBus


SCENARIO_ARRAY = [1, 2, 3, 0, 0, 90, 20, 1, 0.5, 2.0, 3.0, 7, 0.1, 0.2, 0.3, 1.0, 1.5, 0.02]


def make_botpose_array(pose=(0, 0, 0, 0, 0, 0), latency_ms=0.0, tags=(), tag_count=None,
                       tag_span=0.0, avg_dist=0.0, avg_area=0.0):
    """Build a botpose entry: 11 scalars followed by one 7-value block per tag."""
    count = len(tags) if tag_count is None else tag_count
    values = [*pose, latency_ms, count, tag_span, avg_dist, avg_area]
    for tag in tags:
        values.extend(tag)
    return values


@pytest.fixture
def bus():
    return InMemoryBus()
