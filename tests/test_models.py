"""
Tests for the video record model and status state machine.
"""

import pytest

from uploader.errors import DecodeFailed, InvalidTransition
from uploader.models import (
    UploadStatus,
    VideoRecord,
    can_transition,
    check_transition,
)


class TestVideoRecord:
    """Tests for equality, playability and wire encoding."""

    def test_same_for_display_ignores_other_fields(self, make_record):
        first = make_record("a", title="One")
        second = make_record("a", title="Two", local_url=None)

        assert first.same_for_display(second)
        assert first != second

    def test_same_for_display_detects_status_and_url(self, make_record):
        base = make_record("a")

        assert not base.same_for_display(base.replace(status=UploadStatus.UPLOADING))
        assert not base.same_for_display(base.replace(video_url="https://x"))
        assert not base.same_for_display(None)

    def test_completed_without_url_is_not_playable(self, make_record):
        assert not make_record(status=UploadStatus.COMPLETED).is_playable
        assert make_record(status=UploadStatus.COMPLETED, video_url="https://x").is_playable
        assert not make_record(status=UploadStatus.FAILED, video_url="https://x").is_playable

    def test_document_round_trip(self, make_record):
        record = make_record("a", status=UploadStatus.FAILED, error="boom")

        assert VideoRecord.from_document("a", record.to_document()) == record

    def test_document_omits_absent_error(self, make_record):
        document = make_record().to_document()

        assert "error" not in document
        assert document["status"] == "pending"
        assert document["createdAt"] == "2024-05-01T12:00:00+00:00"

    def test_naive_timestamp_read_as_utc(self, make_document):
        document = make_document()
        document["createdAt"] = "2024-05-01T12:00:00"

        record = VideoRecord.from_document("a", document)

        assert record.created_at.utcoffset().total_seconds() == 0

    @pytest.mark.parametrize("mutate", [
        lambda d: d.pop("title"),
        lambda d: d.update(status="exploded"),
        lambda d: d.update(createdAt="yesterday"),
    ])
    def test_malformed_document_raises_decode_failed(self, make_document, mutate):
        document = make_document()
        mutate(document)

        with pytest.raises(DecodeFailed):
            VideoRecord.from_document("a", document)

    def test_missing_payload_raises_decode_failed(self):
        with pytest.raises(DecodeFailed):
            VideoRecord.from_document("a", None)


class TestTransitions:
    """Tests for the status state machine."""

    @pytest.mark.parametrize("current,target", [
        (UploadStatus.PENDING, UploadStatus.UPLOADING),
        (UploadStatus.UPLOADING, UploadStatus.UPLOADED),
        (UploadStatus.UPLOADED, UploadStatus.COMPLETED),
        (UploadStatus.UPLOADING, UploadStatus.FAILED),
        (UploadStatus.FAILED, UploadStatus.UPLOADING),
        (UploadStatus.COMPLETED, UploadStatus.PROCESSED_BY_THUNK),
        (UploadStatus.UPLOADED, UploadStatus.PROCESSED_BY_THUNK),
    ])
    def test_allowed(self, current, target):
        assert can_transition(current, target)
        check_transition(current, target)

    @pytest.mark.parametrize("current,target", [
        (UploadStatus.PENDING, UploadStatus.COMPLETED),
        (UploadStatus.COMPLETED, UploadStatus.UPLOADING),
        (UploadStatus.PENDING, UploadStatus.PROCESSED_BY_THUNK),
        (UploadStatus.PROCESSED_BY_THUNK, UploadStatus.FAILED),
    ])
    def test_rejected(self, current, target):
        assert not can_transition(current, target)
        with pytest.raises(InvalidTransition):
            check_transition(current, target)

    def test_wire_values(self):
        assert [s.value for s in UploadStatus] == [
            "pending", "uploading", "uploaded", "completed", "failed", "processedByThunk",
        ]
