import pytest

from frame_removal.state import (
    BoundingBox, FrameDetectionResult, FrameRemovalJob, FrameRemovalUpdate, ImageDimensions,
    ProcessingStatus, no_frame
)


class TestBoundingBox:

    def test_edges(self):
        box = BoundingBox(10, 20, 30, 40)

        assert box.right == 40
        assert box.bottom == 60
        assert box.area == 1200
        assert box.as_crop_box() == (10, 20, 40, 60)

    def test_fits_within(self):
        dims = ImageDimensions(100, 100)

        assert BoundingBox(0, 0, 100, 100).fits_within(dims)
        assert not BoundingBox(1, 0, 100, 100).fits_within(dims)
        assert not BoundingBox(-1, 0, 10, 10).fits_within(dims)


class TestFrameDetectionResult:

    def test_no_frame(self):
        result = no_frame(0.42, ImageDimensions(10, 20))

        assert result.has_frame is False
        assert result.confidence == 0.42
        assert result.bounding_box is None
        assert result.method == "edge-detection"

    def test_to_dict(self):
        result = FrameDetectionResult(
            has_frame=True,
            confidence=0.9,
            original_dimensions=ImageDimensions(500, 500),
            bounding_box=BoundingBox(50, 50, 400, 400),
            cropped_dimensions=ImageDimensions(400, 400),
        )

        assert result.to_dict() == {
            'hasFrame': True,
            'confidence': 0.9,
            'boundingBox': {'x': 50, 'y': 50, 'width': 400, 'height': 400},
            'method': 'edge-detection',
            'originalDimensions': {'width': 500, 'height': 500},
            'croppedDimensions': {'width': 400, 'height': 400},
        }


class TestFrameRemovalJob:

    def test_from_message(self):
        job = FrameRemovalJob.from_message({
            'artworkId': 'a1',
            'imageUrl': 'https://example.com/a1.jpg',
            'galleryId': 'g1',
            'config': {'minConfidence': 0.7},
        })

        assert job.artwork_id == 'a1'
        assert job.gallery_id == 'g1'
        assert job.config == {'minConfidence': 0.7}
        assert FrameRemovalJob.from_message(job.to_message()) == job

    @pytest.mark.parametrize("message", [
        {'imageUrl': 'x', 'galleryId': 'g'},
        {'artworkId': 'a', 'galleryId': 'g'},
        {'artworkId': 'a', 'imageUrl': 'x'},
        {'artworkId': '', 'imageUrl': 'x', 'galleryId': 'g'},
    ])
    def test_rejects_incomplete_messages(self, message):
        with pytest.raises(ValueError):
            FrameRemovalJob.from_message(message)

    @pytest.mark.parametrize("message", [['artworkId'], "text", None, 42])
    def test_rejects_non_object_messages(self, message):
        with pytest.raises(ValueError, match="must be an object"):
            FrameRemovalJob.from_message(message)


class TestFrameRemovalUpdate:

    def test_only_failures_are_retryable(self):
        assert FrameRemovalUpdate('a', ProcessingStatus.FAILED, error='boom').retryable
        assert not FrameRemovalUpdate('a', ProcessingStatus.COMPLETED).retryable

    def test_processed_at_is_set(self):
        assert FrameRemovalUpdate('a', ProcessingStatus.COMPLETED).processed_at
