"""Tests for the landmark model and the posture metrics."""

import math
from itertools import combinations

import numpy as np
import pytest

from kyudo.pose.base import Landmark, LandmarkSet, PoseLandmark
from kyudo.pose.geometry import (
    METRIC_NAMES,
    AngleRecord,
    derive_metrics,
    estimated_mouth_height,
    hip_tilt,
    joint_angle,
    kuchiwari_offset,
    monomi_angle,
    normalize_degrees,
    spine_tilt,
)
from tests.conftest import DRAW_POSE, make_landmarks, point

LM = PoseLandmark

METRIC_REQUIREMENTS = {
    "left_elbow": {LM.LEFT_SHOULDER, LM.LEFT_ELBOW, LM.LEFT_WRIST},
    "right_elbow": {LM.RIGHT_SHOULDER, LM.RIGHT_ELBOW, LM.RIGHT_WRIST},
    "left_shoulder": {LM.LEFT_ELBOW, LM.LEFT_SHOULDER, LM.RIGHT_SHOULDER},
    "right_shoulder": {LM.RIGHT_ELBOW, LM.RIGHT_SHOULDER, LM.LEFT_SHOULDER},
    "hip_tilt": {LM.LEFT_HIP, LM.RIGHT_HIP},
    "spine_tilt": {LM.LEFT_SHOULDER, LM.RIGHT_SHOULDER, LM.LEFT_HIP, LM.RIGHT_HIP},
    "monomi_angle": {LM.LEFT_EAR, LM.RIGHT_EAR, LM.LEFT_SHOULDER, LM.RIGHT_SHOULDER},
    "kuchiwari_offset": {LM.RIGHT_WRIST, LM.NOSE, LM.LEFT_EAR, LM.RIGHT_EAR},
}


class TestLandmarkSet:
    def test_missing_landmark_is_none(self):
        landmarks = make_landmarks({LM.NOSE: (0.5, 0.2)})
        assert landmarks.get(LM.NOSE) == point(0.5, 0.2)
        assert landmarks.get(LM.LEFT_WRIST) is None
        assert LM.LEFT_WRIST not in landmarks

    def test_unknown_index_is_none(self):
        assert LandmarkSet().get(99) is None

    def test_from_list_skips_empty_slots(self):
        slots = [None] * 33
        slots[LM.LEFT_HIP] = {"x": 0.4, "y": 0.6, "visibility": 0.9}
        landmarks = LandmarkSet.from_list(slots)
        assert len(landmarks) == 1
        assert landmarks.get(LM.LEFT_HIP).visibility == 0.9

    def test_to_list_is_positional(self, draw_pose):
        slots = draw_pose.to_list()
        assert len(slots) == 33
        assert slots[LM.NOSE] == {"x": 0.50, "y": 0.20, "z": None, "visibility": None}
        assert slots[LM.LEFT_KNEE] is None
        assert LandmarkSet.from_list(slots) == draw_pose

    def test_without(self, draw_pose):
        reduced = draw_pose.without(LM.NOSE, LM.LEFT_EAR)
        assert len(reduced) == len(draw_pose) - 2
        assert reduced.get(LM.NOSE) is None
        assert draw_pose.get(LM.NOSE) is not None


class TestJointAngle:
    def test_right_angle(self):
        assert joint_angle(point(0, 1), point(0, 0), point(1, 0)) == pytest.approx(90.0)

    def test_straight_line(self):
        assert joint_angle(point(0, 0), point(1, 0), point(2, 0)) == pytest.approx(180.0)

    def test_symmetric_in_outer_points(self):
        a, b, c = point(0.1, 0.7), point(0.4, 0.3), point(0.9, 0.8)
        assert joint_angle(a, b, c) == pytest.approx(joint_angle(c, b, a))

    def test_translation_invariant(self):
        a, b, c = point(0.1, 0.7), point(0.4, 0.3), point(0.9, 0.8)
        dx, dy = 0.25, -0.15
        moved = [point(p.x + dx, p.y + dy) for p in (a, b, c)]
        assert joint_angle(*moved) == pytest.approx(joint_angle(a, b, c), abs=1e-9)

    def test_zero_length_ray_returns_zero(self):
        assert joint_angle(point(0.5, 0.5), point(0.5, 0.5), point(0.9, 0.1)) == 0.0
        assert joint_angle(point(0.2, 0.1), point(0.5, 0.5), point(0.5, 0.5)) == 0.0

    def test_range(self):
        rng = np.random.default_rng(7)
        for _ in range(200):
            a, b, c = (point(*rng.uniform(-1, 2, size=2)) for _ in range(3))
            angle = joint_angle(a, b, c)
            assert 0.0 <= angle <= 180.0


class TestPostureMetrics:
    def test_level_hips_are_zero_not_missing(self):
        landmarks = make_landmarks({LM.LEFT_HIP: (0.45, 0.6), LM.RIGHT_HIP: (0.55, 0.6)})
        assert hip_tilt(landmarks) == pytest.approx(0.0)

    def test_hip_tilt_follows_left_to_right_vector(self, draw_pose):
        # Facing the camera the left hip is on the image right
        assert hip_tilt(draw_pose) == pytest.approx(180.0)
        tilted = make_landmarks({LM.LEFT_HIP: (0.55, 0.60), LM.RIGHT_HIP: (0.45, 0.61)})
        assert hip_tilt(tilted) == pytest.approx(180.0 - math.degrees(math.atan2(0.01, 0.10)))
        raised = make_landmarks({LM.LEFT_HIP: (0.45, 0.61), LM.RIGHT_HIP: (0.55, 0.60)})
        assert hip_tilt(raised) == pytest.approx(math.degrees(math.atan2(0.01, 0.10)))

    def test_upright_spine(self, draw_pose):
        assert spine_tilt(draw_pose) == pytest.approx(0.0, abs=1e-9)

    def test_leaning_spine(self):
        landmarks = make_landmarks({
            LM.LEFT_SHOULDER: (0.7, 0.4),
            LM.RIGHT_SHOULDER: (0.5, 0.4),
            LM.LEFT_HIP: (0.6, 0.5),
            LM.RIGHT_HIP: (0.4, 0.5),
        })
        assert spine_tilt(landmarks) == pytest.approx(45.0)

    def test_monomi_wraps_into_half_open_range(self):
        landmarks = make_landmarks({
            LM.LEFT_SHOULDER: (0.60, 0.30),
            LM.RIGHT_SHOULDER: (0.40, 0.30),
            LM.LEFT_EAR: (0.55, 0.22),
            LM.RIGHT_EAR: (0.50, 0.17),
        })
        assert monomi_angle(landmarks) == pytest.approx(45.0, abs=1e-6)

    def test_parallel_lines_have_no_monomi(self, draw_pose):
        assert monomi_angle(draw_pose) == pytest.approx(0.0, abs=1e-9)

    @pytest.mark.parametrize("angle,expected", [
        (0.0, 0.0),
        (180.0, 180.0),
        (-180.0, 180.0),
        (190.0, -170.0),
        (-315.0, 45.0),
        (540.0, 180.0),
    ])
    def test_normalize_degrees(self, angle, expected):
        assert normalize_degrees(angle) == pytest.approx(expected)

    def test_kuchiwari_offset(self):
        landmarks = make_landmarks({
            LM.NOSE: (0.5, 0.2),
            LM.LEFT_EAR: (0.55, 0.3),
            LM.RIGHT_EAR: (0.45, 0.3),
            LM.RIGHT_WRIST: (0.4, 0.3),
        })
        assert estimated_mouth_height(landmarks) == pytest.approx(0.255)
        assert kuchiwari_offset(landmarks) == pytest.approx(0.045)

    def test_full_pose_has_every_metric(self, draw_pose):
        record = derive_metrics(draw_pose, frame=3)
        assert record.frame == 3
        assert set(record.available()) == set(METRIC_NAMES)

    def test_empty_landmarks(self):
        record = derive_metrics(LandmarkSet())
        assert record.available() == {}

    def test_every_missing_subset(self):
        present = list(DRAW_POSE)
        for count in range(len(present) + 1):
            for missing in combinations(present, count):
                landmarks = make_landmarks(DRAW_POSE).without(*missing)
                record = derive_metrics(landmarks)
                for metric, required in METRIC_REQUIREMENTS.items():
                    value = record.get(metric)
                    if required.isdisjoint(missing):
                        assert value is not None, (metric, missing)
                    else:
                        assert value is None, (metric, missing)


class TestAngleRecord:
    def test_unknown_metric(self):
        with pytest.raises(KeyError):
            AngleRecord().get("knee")

    def test_dict_keeps_missing_values(self):
        record = AngleRecord(frame=2, left_elbow=165.0, hip_tilt=0.0)
        data = record.to_dict()
        assert data["hip_tilt"] == 0.0
        assert data["spine_tilt"] is None
        assert AngleRecord.from_dict(data) == record

    def test_landmark_dict(self):
        landmark = Landmark(x=0.1, y=0.2, z=-0.3, visibility=0.8)
        assert Landmark.from_dict(landmark.to_dict()) == landmark
