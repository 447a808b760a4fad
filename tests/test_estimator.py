import math
import threading

import pytest

from conftest import SCENARIO_ARRAY, make_botpose_array
from vision_telemetry.alliance import StaticAllianceSource
from vision_telemetry.estimator import (
    BotPose,
    BotPoseCache,
    PoseEstimate,
    PoseEstimator,
    PoseSnapshot,
    decode_pose_estimate,
)
from vision_telemetry.types import Alliance, Pose3D, RawSample

TAG_A = (7, 0.1, 0.2, 0.3, 1.0, 1.5, 0.02)
TAG_B = (8, -0.4, 0.1, 0.25, 2.0, 2.4, 0.4)


def test_scenario_single_tag_decodes():
    snap = decode_pose_estimate(RawSample(tuple(SCENARIO_ARRAY), 5_000_000))
    assert snap is not None
    assert snap.pose.translation == (1.0, 2.0, 3.0)
    assert snap.pose.yaw == pytest.approx(math.pi / 2, abs=1e-9)
    assert snap.has_data
    assert len(snap.fiducials) == 1
    (tag,) = snap.fiducials
    assert tag.id == 7
    assert tag.ambiguity == pytest.approx(0.02)
    assert snap.tag_count == 1
    assert snap.tag_span == 0.5
    assert snap.avg_tag_dist == 2.0
    assert snap.avg_tag_area == 3.0


def test_timestamp_is_shifted_by_latency():
    snap = decode_pose_estimate(RawSample(tuple(SCENARIO_ARRAY), 5_000_000))
    assert snap.latency_ms == 20
    assert snap.timestamp_seconds == pytest.approx(5.0 - 0.020)


def test_empty_array_is_absent():
    assert decode_pose_estimate(RawSample((), 1_000_000)) is None


def test_length_mismatch_keeps_scalars_but_drops_tags():
    raw = make_botpose_array(pose=(1.5, -2.0, 0.25, 10.0, 0.0, 90.0), latency_ms=35,
                             tags=[TAG_A], tag_count=2, tag_span=0.7, avg_dist=3.1, avg_area=0.9)
    snap = decode_pose_estimate(RawSample(tuple(raw), 2_000_000))
    assert snap is not None
    assert not snap.has_data
    assert len(snap.fiducials) == 0
    assert snap.pose.translation == (1.5, -2.0, 0.25)
    assert snap.pose.roll == pytest.approx(math.radians(10.0), abs=1e-9)
    assert snap.pose.yaw == pytest.approx(math.pi / 2, abs=1e-9)
    assert snap.latency_ms == 35
    assert snap.tag_count == 2
    assert snap.tag_span == 0.7
    assert snap.avg_tag_dist == 3.1
    assert snap.avg_tag_area == 0.9


def test_scalars_without_tags_is_not_data():
    raw = make_botpose_array(pose=(1, 1, 0, 0, 0, 0), tags=[])
    snap = decode_pose_estimate(RawSample(tuple(raw), 0))
    assert snap is not None
    assert not snap.has_data
    assert snap.get_min_tag_ambiguity() == 1.0


def test_short_array_decodes_identity_pose():
    snap = decode_pose_estimate(RawSample((1.0, 2.0, 3.0), 0))
    assert snap is not None
    assert snap.pose == Pose3D()
    assert snap.tag_count == 0
    assert not snap.has_data


def test_ambiguity_sentinel_without_data():
    snap = PoseSnapshot()
    assert snap.get_min_tag_ambiguity() == 1.0
    assert snap.get_max_tag_ambiguity() == 1.0
    assert snap.get_avg_tag_ambiguity() == 1.0


def test_ambiguity_aggregates_over_tags():
    raw = make_botpose_array(tags=[TAG_A, TAG_B])
    snap = decode_pose_estimate(RawSample(tuple(raw), 0))
    assert snap.get_min_tag_ambiguity() == pytest.approx(0.02)
    assert snap.get_max_tag_ambiguity() == pytest.approx(0.4)
    assert snap.get_avg_tag_ambiguity() == pytest.approx(0.21)


def test_megatag2_flag_is_carried():
    snap = decode_pose_estimate(RawSample(tuple(SCENARIO_ARRAY), 0), megatag2=True)
    assert snap.is_megatag2


def test_snapshot_str():
    assert "No PoseEstimate" in str(PoseSnapshot())
    text = str(decode_pose_estimate(RawSample(tuple(SCENARIO_ARRAY), 0)))
    assert "Tag Count: 1" in text
    assert "Tag ID 7" in text


def test_pose_estimate_refresh_reads_bus(bus):
    bus.write_array("limelight/botpose_wpiblue", SCENARIO_ARRAY, timestamp_us=3_000_000)
    estimate = PoseEstimate(bus, "limelight", "botpose_wpiblue")
    assert not estimate.has_data

    snap = estimate.refresh()
    assert snap is not None
    assert estimate.has_data
    assert estimate.snapshot() is snap
    assert estimate.pose.translation == (1.0, 2.0, 3.0)
    assert estimate.timestamp_seconds == pytest.approx(2.98)
    assert estimate.get_avg_tag_ambiguity() == pytest.approx(0.02)


def test_snapshot_is_not_mutated_by_later_refresh(bus):
    key = "limelight/botpose_wpiblue"
    bus.write_array(key, SCENARIO_ARRAY)
    estimate = PoseEstimate(bus, "limelight", "botpose_wpiblue")
    first = estimate.refresh()

    bus.write_array(key, make_botpose_array(pose=(9, 9, 0, 0, 0, 0), tags=[TAG_B]))
    second = estimate.refresh()

    assert first.pose.x == 1.0
    assert second.pose.x == 9.0
    assert first.fiducials.ids() == [7]


def test_cache_returns_same_instance_and_empty_refresh_clears_data(bus):
    key = "limelight/botpose_wpiblue"
    cache = BotPoseCache(bus, "limelight")
    bus.write_array(key, SCENARIO_ARRAY)

    first = cache.get(BotPose.BLUE)
    assert first.has_data

    bus.write_array(key, [])
    second = cache.get(BotPose.BLUE)
    assert second is first
    assert not second.has_data
    assert second.get_avg_tag_ambiguity() == 1.0
    assert len(cache) == 1


def test_cache_builds_one_estimate_per_key(bus):
    cache = BotPoseCache(bus, "limelight")
    for key in BotPose:
        estimate = cache.get(key)
        assert estimate.entry == key.entry
        assert estimate.is_megatag2 == key.is_megatag2
    assert len(cache) == 4
    assert all(key in cache for key in BotPose)


def test_cache_is_safe_across_threads(bus):
    cache = BotPoseCache(bus, "limelight")
    bus.write_array("limelight/botpose_orb_wpiblue", SCENARIO_ARRAY)
    seen = []

    def _worker():
        for _ in range(50):
            seen.append(cache.get(BotPose.BLUE_MEGATAG2))

    threads = [threading.Thread(target=_worker) for _ in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len({id(e) for e in seen}) == 1
    assert len(cache) == 1


def test_cache_fetch_returns_absence_for_empty_entry(bus):
    cache = BotPoseCache(bus, "limelight")
    assert cache.fetch(BotPose.RED) is None
    assert BotPose.RED in cache


@pytest.mark.parametrize(
    "alliance,megatag2,expected",
    [
        (Alliance.RED, False, BotPose.RED),
        (Alliance.RED, True, BotPose.RED_MEGATAG2),
        (Alliance.BLUE, False, BotPose.BLUE),
        (Alliance.BLUE, True, BotPose.BLUE_MEGATAG2),
    ],
)
def test_botpose_for_alliance(alliance, megatag2, expected):
    assert BotPose.for_alliance(alliance, megatag2) is expected


def _estimator(bus, alliance=None, megatag2=False):
    cache = BotPoseCache(bus, "limelight")
    return PoseEstimator(cache, StaticAllianceSource(alliance), megatag2)


def test_get_pose_estimate_uses_blue_origin(bus):
    bus.write_array("limelight/botpose_wpiblue", SCENARIO_ARRAY)
    bus.write_array("limelight/botpose_orb_wpiblue", make_botpose_array(pose=(5, 5, 0, 0, 0, 0), tags=[TAG_B]))

    legacy = _estimator(bus).get_pose_estimate()
    mt2 = _estimator(bus, megatag2=True).get_pose_estimate()

    assert legacy.pose.x == 1.0 and not legacy.is_megatag2
    assert mt2.pose.x == 5.0 and mt2.is_megatag2


def test_alliance_estimate_absent_when_alliance_unknown(bus):
    for entry in ("botpose_wpired", "botpose_wpiblue", "botpose_orb_wpired", "botpose_orb_wpiblue"):
        bus.write_array(f"limelight/{entry}", SCENARIO_ARRAY)
    estimator = _estimator(bus, alliance=None)
    assert estimator.get_alliance_pose_estimate() is None

    no_source = PoseEstimator(BotPoseCache(bus, "limelight"))
    assert no_source.get_alliance_pose_estimate() is None


def test_alliance_estimate_dispatches_by_colour(bus):
    bus.write_array("limelight/botpose_wpired", make_botpose_array(pose=(15, 7, 0, 0, 0, 180), tags=[TAG_A]))
    bus.write_array("limelight/botpose_orb_wpired", make_botpose_array(pose=(14, 6, 0, 0, 0, 180), tags=[TAG_A]))
    bus.write_array("limelight/botpose_wpiblue", SCENARIO_ARRAY)

    red = _estimator(bus, Alliance.RED).get_alliance_pose_estimate()
    red_mt2 = _estimator(bus, Alliance.RED, megatag2=True).get_alliance_pose_estimate()
    blue = _estimator(bus, Alliance.BLUE).get_alliance_pose_estimate()

    assert red.pose.x == 15.0
    assert red_mt2.pose.x == 14.0
    assert blue.pose.x == 1.0


def test_alliance_change_between_calls(bus):
    bus.write_array("limelight/botpose_wpired", make_botpose_array(pose=(15, 7, 0, 0, 0, 0), tags=[TAG_A]))
    bus.write_array("limelight/botpose_wpiblue", SCENARIO_ARRAY)
    source = StaticAllianceSource(Alliance.RED)
    estimator = PoseEstimator(BotPoseCache(bus, "limelight"), source)

    assert estimator.get_alliance_pose_estimate().pose.x == 15.0
    source.set("blue")
    assert estimator.get_alliance_pose_estimate().pose.x == 1.0
    source.set(None)
    assert estimator.get_alliance_pose_estimate() is None


def test_legacy_bot_pose(bus):
    estimator = _estimator(bus)
    assert estimator.get_bot_pose() == Pose3D()
    bus.write_array("limelight/botpose", [1.0, 2.0, 0.0, 0.0, 0.0, 45.0])
    pose = estimator.get_bot_pose()
    assert pose.x == 1.0
    assert pose.yaw == pytest.approx(math.pi / 4)


def test_non_finite_tag_count_decodes_without_tags():
    raw = (1, 2, 3, 0, 0, 90, 20, math.nan, 0.5, 2.0, 3.0)
    snap = decode_pose_estimate(RawSample(raw, 1_000_000))

    assert snap is not None
    assert snap.tag_count == 0
    assert not snap.has_data
    assert snap.pose.translation == (1.0, 2.0, 3.0)
    assert snap.get_avg_tag_ambiguity() == 1.0


def test_non_finite_tag_id_keeps_estimate():
    raw = make_botpose_array(tags=[(math.nan, 0.1, 0.2, 0.3, 1.0, 1.5, 0.02)])
    snap = decode_pose_estimate(RawSample(tuple(raw), 1_000_000))

    assert snap.has_data
    assert snap.fiducials.ids() == [0]


def test_live_estimate_exposes_tag_statistics(bus):
    raw = make_botpose_array(tags=[TAG_A], tag_span=0.4, avg_dist=1.5, avg_area=0.3)
    bus.write_array("limelight/botpose_wpiblue", raw, timestamp_us=1_000_000)
    estimate = PoseEstimate(bus, "limelight", "botpose_wpiblue")
    estimate.refresh()

    assert estimate.tag_span == pytest.approx(0.4)
    assert estimate.avg_tag_dist == pytest.approx(1.5)
    assert estimate.avg_tag_area == pytest.approx(0.3)
