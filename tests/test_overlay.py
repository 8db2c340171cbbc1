"""Tests for skeleton overlay rendering."""

import numpy as np
import pytest

from kyudo.pose.base import LandmarkSet, PoseLandmark
from kyudo.pose.overlay import draw_frame_label, fill_placeholder, render_overlay
from tests.conftest import DRAW_POSE, make_landmarks

WIDTH, HEIGHT = 320, 240

LM = PoseLandmark


def blank():
    return np.zeros((HEIGHT, WIDTH, 3), dtype=np.uint8)


def kuchiwari_pose(wrist_y):
    return make_landmarks({
        LM.NOSE: (0.5, 0.2),
        LM.LEFT_EAR: (0.55, 0.3),
        LM.RIGHT_EAR: (0.45, 0.3),
        LM.RIGHT_WRIST: (0.8, wrist_y),
    })


def dash_region(surface, wrist_y):
    y = int(round(wrist_y * HEIGHT))
    return surface[y - 1:y + 2, 0:5].reshape(-1, 3)


class TestRenderOverlay:
    def test_full_pose_draws(self, draw_pose):
        surface = blank()
        render_overlay(surface, draw_pose, WIDTH, HEIGHT)
        assert surface.any()

    @pytest.mark.parametrize("landmarks", [None, LandmarkSet()])
    def test_nothing_to_draw(self, landmarks):
        surface = blank()
        render_overlay(surface, landmarks, WIDTH, HEIGHT)
        assert not surface.any()

    @pytest.mark.parametrize("missing", [
        (LM.RIGHT_WRIST,),
        (LM.LEFT_EAR, LM.NOSE),
        (LM.LEFT_SHOULDER, LM.RIGHT_HIP, LM.RIGHT_EAR),
        tuple(DRAW_POSE)[1:],
    ])
    def test_incomplete_pose(self, draw_pose, missing):
        surface = blank()
        render_overlay(surface, draw_pose.without(*missing), WIDTH, HEIGHT)
        assert surface.any()

    def test_points_outside_the_frame(self):
        landmarks = make_landmarks({LM.LEFT_SHOULDER: (-0.5, 1.4), LM.LEFT_ELBOW: (1.6, -0.2)})
        render_overlay(blank(), landmarks, WIDTH, HEIGHT)

    def test_high_kuchiwari_line(self):
        # Mouth estimated at 0.255
        surface = blank()
        render_overlay(surface, kuchiwari_pose(0.25), WIDTH, HEIGHT)
        pixels = dash_region(surface, 0.25)
        brightest = pixels[pixels.sum(axis=1).argmax()]
        assert brightest[2] > brightest[1]

    def test_low_kuchiwari_line(self):
        surface = blank()
        render_overlay(surface, kuchiwari_pose(0.4), WIDTH, HEIGHT)
        pixels = dash_region(surface, 0.4)
        brightest = pixels[pixels.sum(axis=1).argmax()]
        assert brightest[1] > brightest[2]

    @pytest.mark.parametrize("wrist_y,high", [(0.27, True), (0.285, False)])
    def test_kuchiwari_margin_below_mouth(self, wrist_y, high):
        # Mouth at 0.255, so the line counts as high down to 0.275
        surface = blank()
        render_overlay(surface, kuchiwari_pose(wrist_y), WIDTH, HEIGHT)
        pixels = dash_region(surface, wrist_y)
        brightest = pixels[pixels.sum(axis=1).argmax()]
        assert bool(brightest[2] > brightest[1]) == high

    def test_kuchiwari_line_without_face(self):
        surface = blank()
        render_overlay(surface, make_landmarks({LM.RIGHT_WRIST: (0.8, 0.4)}), WIDTH, HEIGHT)
        assert dash_region(surface, 0.4).any()


class TestSurfaceHelpers:
    def test_fill_placeholder(self):
        surface = blank()
        fill_placeholder(surface)
        assert (surface.reshape(-1, 3) == [30, 15, 10]).all()

    def test_frame_label(self):
        surface = blank()
        draw_frame_label(surface, 12)
        assert surface[:30, :120].any()
