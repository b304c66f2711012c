"""Tests for pixel-to-pitch trajectory projection."""

import numpy as np
import pytest

from pitchtrace.models.trajectory import DetectionPoint
from pitchtrace.processing.projection import (
    LATERAL_EXTENT_METERS,
    PITCH_LENGTH_METERS,
    CameraCalibration,
    TrajectoryProjector,
)


# Per-sample detection noise in depth progress, a few pixel rows at most
ROW_JITTER = np.array([0.0, 0.01, -0.01, 0.008, 0.0, -0.006, 0.01, 0.0, -0.01, 0.005, 0.0, 0.01, 0.0])


def detection(time, norm_x, norm_y, confidence=0.8, width=640, height=360):
    return DetectionPoint(
        time=time,
        x=norm_x * width,
        y=norm_y * height,
        norm_x=norm_x,
        norm_y=norm_y,
        confidence=confidence,
    )


def straight_delivery(count=10, x=0.5):
    """Ball moving at constant image speed from near to far end."""
    return [
        detection(i * 0.08, x, 0.9 - 0.8 * i / (count - 1), confidence=0.5 + i * 0.01)
        for i in range(count)
    ]


@pytest.fixture
def projector() -> TrajectoryProjector:
    return TrajectoryProjector()


class TestDepthMapping:
    """Tests for down-pitch distance."""

    def test_bottom_of_frame_is_bowling_end(self, projector):
        assert projector.distance_for(projector.depth_progress(1.0)) == 0.0

    def test_top_of_frame_is_batting_end(self, projector):
        assert projector.distance_for(projector.depth_progress(0.0)) == pytest.approx(
            PITCH_LENGTH_METERS
        )

    def test_progress_clamped_to_pitch(self):
        projector = TrajectoryProjector(CameraCalibration(near_y=0.8, far_y=0.2))

        assert projector.depth_progress(0.95) == 0.0
        assert projector.depth_progress(0.05) == 1.0
        assert projector.depth_progress(0.5) == pytest.approx(0.5)

    def test_foreshortening_compresses_near_end(self):
        linear = TrajectoryProjector()
        curved = TrajectoryProjector(CameraCalibration(foreshortening=2.0))

        assert curved.distance_for(0.5) < linear.distance_for(0.5)
        assert curved.distance_for(1.0) == pytest.approx(linear.distance_for(1.0))


class TestLateralMapping:
    """Tests for sideways offset."""

    def test_centre_line_is_zero(self, projector):
        assert projector.lateral_for(0.5, 0.0) == 0.0
        assert projector.lateral_for(0.5, 1.0) == 0.0

    def test_sign_follows_frame_side(self, projector):
        assert projector.lateral_for(0.4, 0.3) < 0
        assert projector.lateral_for(0.6, 0.3) > 0

    def test_same_pixel_offset_covers_more_metres_further_away(self, projector):
        near = projector.lateral_for(0.55, 0.0)
        far = projector.lateral_for(0.55, 0.8)

        assert far > near

    def test_lateral_is_bounded(self, projector):
        assert projector.lateral_for(0.0, 1.0) == -LATERAL_EXTENT_METERS
        assert projector.lateral_for(1.0, 1.0) == LATERAL_EXTENT_METERS


class TestHeights:
    """Tests for height estimation."""

    def test_uniform_motion_stays_on_the_ground(self, projector):
        times = np.array([0.0, 0.1, 0.2, 0.3])
        progress = np.array([0.0, 0.25, 0.5, 0.75])

        heights = projector.heights_for(times, progress)

        assert np.allclose(heights, 0.0)

    def test_lead_over_ground_track_reads_as_height(self, projector):
        times = np.array([0.0, 0.2, 0.4, 0.6, 0.8])
        progress = np.array([0.0, 0.4, 0.6, 0.65, 0.8])

        heights = projector.heights_for(times, progress)

        assert heights.max() > 0
        assert np.argmax(heights) in (1, 2)

    def test_frame_jitter_stays_on_the_ground(self, projector):
        times = np.arange(13) * 0.08
        progress = 0.1 + 0.8 * times + ROW_JITTER

        heights = projector.heights_for(times, progress)

        assert np.all(heights == 0.0)

    def test_zero_tolerance_reads_raw_lead(self):
        projector = TrajectoryProjector(CameraCalibration(min_lead=0.0, timing_tolerance=0.0))
        times = np.arange(13) * 0.08
        progress = 0.1 + 0.8 * times + ROW_JITTER

        heights = projector.heights_for(times, progress)

        assert heights.max() > 0

    def test_lead_tolerance_grows_with_pace(self, projector):
        slow = projector.lead_tolerance(0.5)
        fast = projector.lead_tolerance(2.0)

        assert projector.lead_tolerance(0.0) == pytest.approx(0.005)
        assert fast > slow
        assert projector.lead_tolerance(-2.0) == fast

    def test_heights_bounded(self):
        projector = TrajectoryProjector(CameraCalibration(height_gain=1000.0, max_height=4.0))
        times = np.array([0.0, 0.1, 0.2])
        progress = np.array([0.0, 0.9, 1.0])

        heights = projector.heights_for(times, progress)

        assert heights.min() >= 0.0
        assert heights.max() <= 4.0

    def test_single_point_has_zero_height(self, projector):
        assert list(projector.heights_for(np.array([0.5]), np.array([0.3]))) == [0.0]

    def test_same_timestamps_have_zero_height(self, projector):
        heights = projector.heights_for(np.array([0.2, 0.2]), np.array([0.1, 0.4]))
        assert list(heights) == [0.0, 0.0]


class TestProject:
    """Tests for TrajectoryProjector.project."""

    def test_empty_input(self, projector):
        assert projector.project([]) == ()

    def test_one_point_per_detection(self, projector):
        detections = straight_delivery()

        trajectory = projector.project(detections)

        assert len(trajectory) == len(detections)
        for d, p in zip(detections, trajectory):
            assert p.time == d.time
            assert p.confidence == d.confidence

    def test_distance_increases_down_the_pitch(self, projector):
        trajectory = projector.project(straight_delivery())

        distances = [p.distance for p in trajectory]
        assert distances == sorted(distances)
        assert 0 <= distances[0] < distances[-1] <= PITCH_LENGTH_METERS

    def test_straight_delivery_has_no_lateral(self, projector):
        trajectory = projector.project(straight_delivery())

        assert all(p.lateral == 0.0 for p in trajectory)

    def test_all_values_within_pitch_bounds(self, projector):
        detections = [
            detection(i * 0.1, x, y)
            for i, (x, y) in enumerate([(0.0, 1.0), (1.0, 0.0), (0.2, 0.6), (0.9, 0.3)])
        ]

        for p in projector.project(detections):
            assert 0 <= p.distance <= PITCH_LENGTH_METERS
            assert -LATERAL_EXTENT_METERS <= p.lateral <= LATERAL_EXTENT_METERS
            assert p.height >= 0

    def test_projection_is_deterministic(self, projector):
        detections = straight_delivery(x=0.47)

        assert projector.project(detections) == projector.project(detections)
        assert TrajectoryProjector().project(detections) == projector.project(detections)

    def test_does_not_modify_input(self, projector):
        detections = straight_delivery()
        before = list(detections)

        projector.project(detections)

        assert detections == before
