"""Projection of pixel detections onto the pitch (Hawk-Eye coordinates).

Assumes a single camera behind the bowler's arm looking down the pitch:

- The bowling end sits at the bottom of the frame and the batting end
  towards the top, so down-pitch distance grows as the ball rises in the
  image.
- Objects further away appear smaller, so a horizontal pixel offset
  covers more metres the further down the pitch the ball is.
- A ball in the air reads further up the frame than its ground position.
  Its ground track is modelled as uniform down-pitch progress over time,
  and the lead over that track is read as height. Lead no larger than
  pixel jitter plus one frame of travel stays on the ground.

Coordinate System (metres):
- distance: down the pitch from the bowling end (0 to PITCH_LENGTH_METERS)
- lateral: signed offset from the centre-line (negative = left in frame)
- height: above the pitch surface
"""

from dataclasses import dataclass
from typing import Optional, Sequence

import numpy as np
from loguru import logger

from pitchtrace.models.trajectory import DetectionPoint, HawkEyePoint

# Fixed reference frame, stumps to stumps
PITCH_LENGTH_METERS = 20.12
PITCH_WIDTH_METERS = 3.05
LATERAL_EXTENT_METERS = PITCH_WIDTH_METERS / 2 + 0.6

# Projected values are rounded to 0.1 mm
COORDINATE_PRECISION = 4


@dataclass(frozen=True)
class CameraCalibration:
    """Down-the-line camera parameters in normalized frame coordinates.

    Attributes:
        near_y: Image row (0-1) of the bowling end. Rows at or below map to 0 m.
        far_y: Image row (0-1) of the batting end. Rows at or above map to
               the full pitch length.
        center_x: Image column (0-1) of the pitch centre-line.
        foreshortening: Exponent applied to depth progress. 1.0 is linear;
                        larger values compress the near end.
        near_half_width: Metres spanned by half the frame width at the
                         bowling end.
        focal_length: Perspective strength, as a ratio to ``depth_span``.
        depth_span: Conceptual depth of the pitch in the same units as
                    ``focal_length``.
        height_gain: Metres of height per unit of depth progress the ball
                     leads its ground track by.
        max_height: Upper bound on estimated height (metres).
        min_lead: Lead (depth progress) always treated as noise, about one
                  pixel row of detection jitter.
        timing_tolerance: Seconds a sample time may differ from the decoded
                          frame's time. Lead the ball could gain in that
                          time at its mean pace is also treated as noise.
    """

    near_y: float = 1.0
    far_y: float = 0.0
    center_x: float = 0.5
    foreshortening: float = 1.0
    near_half_width: float = 1.5
    focal_length: float = 1000.0
    depth_span: float = 1500.0
    height_gain: float = 10.0
    max_height: float = 4.0
    min_lead: float = 0.005
    timing_tolerance: float = 1.0 / 24.0


class TrajectoryProjector:
    """Maps detections to pitch coordinates. Stateless and deterministic."""

    def __init__(self, calibration: Optional[CameraCalibration] = None):
        self.calibration = calibration or CameraCalibration()

    def depth_progress(self, norm_y: float) -> float:
        """Fraction of the pitch covered (0 at the bowling end, 1 at the batting end)."""
        cal = self.calibration
        span = cal.near_y - cal.far_y
        if span <= 0:
            return 0.0
        return float(np.clip((cal.near_y - norm_y) / span, 0.0, 1.0))

    def distance_for(self, progress: float) -> float:
        return PITCH_LENGTH_METERS * progress ** self.calibration.foreshortening

    def lateral_for(self, norm_x: float, progress: float) -> float:
        cal = self.calibration
        scale = cal.focal_length / (cal.focal_length + progress * cal.depth_span)
        lateral = (norm_x - cal.center_x) * 2.0 * cal.near_half_width / scale
        return float(np.clip(lateral, -LATERAL_EXTENT_METERS, LATERAL_EXTENT_METERS))

    def lead_tolerance(self, slope: float) -> float:
        """Lead below which a sample is read as on the ground track.

        Seeks land on whole frames, so a sample can sit up to a frame off
        its nominal time and lead or trail the track by ``slope`` times that.
        """
        cal = self.calibration
        return cal.min_lead + abs(float(slope)) * cal.timing_tolerance

    def heights_for(self, times: np.ndarray, progress: np.ndarray) -> np.ndarray:
        """Estimate height from how far each sample leads the ground track."""
        if len(times) < 2 or float(times[-1] - times[0]) <= 0:
            return np.zeros(len(times))

        cal = self.calibration
        slope, intercept = np.polyfit(times, progress, 1)
        ground = slope * times + intercept
        lead = progress - ground - self.lead_tolerance(slope)
        return np.clip(lead * cal.height_gain, 0.0, cal.max_height)

    def project(self, detections: Sequence[DetectionPoint]) -> tuple[HawkEyePoint, ...]:
        """Convert detections to Hawk-Eye points, one per detection.

        Time and confidence are carried over unchanged.
        """
        if not detections:
            return ()

        times = np.array([d.time for d in detections], dtype=float)
        progress = np.array([self.depth_progress(d.norm_y) for d in detections])
        heights = self.heights_for(times, progress)

        points = []
        for detection, p, height in zip(detections, progress, heights):
            points.append(
                HawkEyePoint(
                    time=detection.time,
                    distance=round(self.distance_for(float(p)), COORDINATE_PRECISION),
                    lateral=round(self.lateral_for(detection.norm_x, float(p)), COORDINATE_PRECISION),
                    height=round(float(height), COORDINATE_PRECISION),
                    confidence=detection.confidence,
                )
            )

        logger.debug(
            f"Projected {len(points)} points, distance "
            f"{points[0].distance:.2f}m -> {points[-1].distance:.2f}m"
        )
        return tuple(points)
