import numpy as np
import pytest

from frame_removal.boundaries import (
    BACKWARD, FORWARD, boundary_threshold, density_profiles, find_artwork_bounds,
    find_edge_boundary
)
from frame_removal.state import BoundingBox


def framed_profile():
    return np.array([0] * 10 + [100] * 3 + [10] * 74 + [100] * 3 + [0] * 10, dtype=np.uint32)


def hollow_rectangle(size=100, outer=10, thickness=3):
    edge_map = np.zeros((size, size), dtype=np.uint8)
    inner = size - outer - thickness
    edge_map[outer:outer + thickness, outer:size - outer] = 255
    edge_map[inner:size - outer, outer:size - outer] = 255
    edge_map[outer:size - outer, outer:outer + thickness] = 255
    edge_map[outer:size - outer, inner:size - outer] = 255
    return edge_map


class TestDensityProfiles:

    def test_counts_edge_pixels(self):
        edge_map = np.zeros((4, 5), dtype=np.uint8)
        edge_map[1, :] = 255
        edge_map[:, 3] = 255

        rows, cols = density_profiles(edge_map)

        assert rows.tolist() == [1, 5, 1, 1]
        assert cols.tolist() == [1, 1, 1, 4, 1]
        assert rows.sum() == cols.sum()


class TestBoundaryThreshold:

    def test_flat_profile_has_no_threshold(self):
        assert boundary_threshold(np.zeros(50, dtype=np.uint32)) == 0.0

    def test_weak_peak_has_no_threshold(self):
        assert boundary_threshold(np.array([4] * 20, dtype=np.uint32)) == 0.0

    def test_sparse_profile_has_no_threshold(self):
        profile = np.zeros(100, dtype=np.uint32)
        profile[50] = 50
        # mean 0.5 is below the minimum
        assert boundary_threshold(profile) == 0.0

    def test_peak_dominates_threshold(self):
        assert boundary_threshold(framed_profile()) == pytest.approx(30.0)

    def test_median_dominates_threshold(self):
        profile = np.array([100] + [80] * 9, dtype=np.uint32)
        assert boundary_threshold(profile) == pytest.approx(120.0)


class TestFindEdgeBoundary:

    def test_forward_and_backward(self):
        profile = framed_profile()

        assert find_edge_boundary(profile, FORWARD) == 13
        assert find_edge_boundary(profile, BACKWARD) == 86

    def test_flat_profile_falls_back_to_full_extent(self):
        profile = np.zeros(40, dtype=np.uint32)

        assert find_edge_boundary(profile, FORWARD) == 0
        assert find_edge_boundary(profile, BACKWARD) == 40

    def test_peak_without_drop_falls_back(self):
        profile = np.array([0, 100] + [40] * 20, dtype=np.uint32)

        assert find_edge_boundary(profile, FORWARD) == 0

    def test_drop_must_be_past_peak(self):
        # Dips right after the peak are part of the frame edge
        profile = np.array([100, 0, 0, 0, 20, 20], dtype=np.uint32)

        assert find_edge_boundary(profile, FORWARD) == 3

    def test_unknown_direction(self):
        with pytest.raises(ValueError):
            find_edge_boundary(framed_profile(), 'sideways')

    def test_empty_profile(self):
        empty = np.zeros(0, dtype=np.uint32)

        assert find_edge_boundary(empty, FORWARD) == 0
        assert find_edge_boundary(empty, BACKWARD) == 0


class TestFindArtworkBounds:

    def test_hollow_rectangle(self):
        box = find_artwork_bounds(hollow_rectangle())

        assert box == BoundingBox(x=13, y=13, width=73, height=73)

    def test_empty_edge_map_is_full_image(self):
        box = find_artwork_bounds(np.zeros((30, 40), dtype=np.uint8))

        assert box == BoundingBox(x=0, y=0, width=40, height=30)

    def test_box_never_negative(self):
        edge_map = np.zeros((50, 50), dtype=np.uint8)
        edge_map[:, 45:48] = 255

        box = find_artwork_bounds(edge_map)

        assert box.width >= 0
        assert box.height >= 0
