"""Tests for data models."""

import pytest

from event_photo_storage.models import (
    BackupJob,
    BackupStatus,
    CompressionClass,
    PhotoMetadata,
    PhotoRecord,
    Tier,
    UploadResult,
    UsageState,
)


class TestPhotoMetadata:
    """Test PhotoMetadata model."""

    def test_valid_metadata(self) -> None:
        """Test creating metadata with defaults."""
        metadata = PhotoMetadata(album_name="Party", uploader_name="Sam", file_size_bytes=10)

        assert metadata.file_type == "image/jpeg"
        assert metadata.event_id is None
        assert not metadata.wants_premium

    def test_non_positive_size_rejected(self) -> None:
        """Test that zero-byte photos are rejected."""
        with pytest.raises(ValueError, match="File size must be positive"):
            PhotoMetadata(album_name="Party", uploader_name="Sam", file_size_bytes=0)

    def test_empty_name_rejected(self) -> None:
        """Test that an empty original name is rejected."""
        with pytest.raises(ValueError, match="Original file name cannot be empty"):
            PhotoMetadata(
                album_name="Party", uploader_name="Sam", file_size_bytes=1, original_name=""
            )

    @pytest.mark.parametrize("flag", ["is_homepage", "is_premium", "is_featured"])
    def test_wants_premium(self, flag: str) -> None:
        """Test that any of the premium flags asks for premium compression."""
        metadata = PhotoMetadata(
            album_name="Party", uploader_name="Sam", file_size_bytes=1, **{flag: True}
        )

        assert metadata.wants_premium


class TestUsageState:
    """Test UsageState model."""

    def test_headroom_is_inclusive(self) -> None:
        """Test that a write filling the tier exactly still fits."""
        state = UsageState(used_bytes=60, capacity_bytes=100, reserved_bytes=30)

        assert state.has_headroom(10)
        assert not state.has_headroom(11)

    @pytest.mark.parametrize(
        "used,expected",
        [(50, "good"), (70, "good"), (71, "warning"), (90, "warning"), (91, "critical")],
    )
    def test_health(self, used: int, expected: str) -> None:
        """Test health thresholds."""
        assert UsageState(used_bytes=used, capacity_bytes=100).health == expected


class TestUploadResult:
    """Test UploadResult model."""

    def test_to_record(self) -> None:
        """Test the persisted columns."""
        result = UploadResult(
            url="https://cdn.test/a.jpg",
            path="events/e/a.jpg",
            size_bytes=42,
            tier=Tier.PRIMARY,
            provider="cloudflare-r2",
            compression_class=CompressionClass.PREMIUM,
            etag='"abc"',
        )

        record = result.to_record()

        assert record["storage_tier"] == "primary"
        assert record["storage_provider"] == "cloudflare-r2"
        assert record["compression_used"] == "premium"
        assert record["file_size"] == 42
        assert record["storage_path"] == "events/e/a.jpg"
        assert record["storage_etag"] == '"abc"'
        assert record["thumbnail_url"] is None

    def test_requires_url(self) -> None:
        """Test that a result without a URL is rejected."""
        with pytest.raises(ValueError, match="url"):
            UploadResult(
                url="",
                path="p",
                size_bytes=1,
                tier=Tier.LOCAL,
                provider="local",
                compression_class=CompressionClass.STANDARD,
            )


class TestPhotoRecord:
    """Test PhotoRecord model."""

    def test_from_dict_ignores_unknown_columns(self) -> None:
        """Test building a record from a data-layer row."""
        record = PhotoRecord.from_dict(
            {
                "id": 7,
                "event_id": "evt1",
                "storage_provider": "google-drive",
                "storage_file_id": "file7",
                "filename": "DSC_7.jpg",
                "likes": 3,
            }
        )

        assert record.id == "7"
        assert record.storage_file_id == "file7"
        assert record.original_name == "DSC_7.jpg"


class TestBackupJob:
    """Test BackupJob state transitions."""

    def test_counters_track_processed(self) -> None:
        """Test that processed always equals successes plus failures."""
        job = BackupJob(backup_id="b1", event_id="evt1")
        job.begin_backup(3, "folder1", "https://drive.test/folder1")

        job.record_success()
        job.record_failure("p2", "boom")
        job.record_success()

        assert job.status is BackupStatus.BACKING_UP
        assert job.processed_photos == 3
        assert job.successful_uploads == 2
        assert job.failed_uploads == 1
        assert job.errors[0].photo_id == "p2"

    def test_terminal_job_is_frozen(self) -> None:
        """Test that a completed job rejects further updates."""
        job = BackupJob(backup_id="b1", event_id="evt1")
        job.begin_backup(1, "folder1", None)
        job.record_success()
        job.complete()

        with pytest.raises(RuntimeError, match="already completed"):
            job.record_success()
        with pytest.raises(RuntimeError):
            job.fail("late")

        assert job.successful_uploads == 1

    def test_fail_sets_error_and_end_time(self) -> None:
        """Test failing a job before any photo is processed."""
        job = BackupJob(backup_id="b1", event_id="evt1")

        job.fail("NoPhotosFound: nothing to do")

        assert job.status is BackupStatus.FAILED
        assert job.end_time is not None
        assert job.duration is not None

    def test_to_dict(self) -> None:
        """Test the status payload."""
        job = BackupJob(backup_id="b1", event_id="evt1")
        job.begin_backup(1, "folder1", None)
        job.record_failure("p1", "boom")
        job.complete()

        data = job.to_dict()

        assert data["status"] == "completed"
        assert data["errors"] == [{"photo_id": "p1", "error": "boom"}]
        assert isinstance(data["start_time"], str)
        assert data["duration_seconds"] >= 0
