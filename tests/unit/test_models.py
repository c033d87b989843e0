"""Unit tests for data models."""

from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from devotional.models import RateLimitWindow, ReflectionJob, ReflectionJobStatus, Verse
from tests.factories import VerseFactory


class TestReflectionJobModel:
    """Tests for the ReflectionJob model."""

    def test_new_job_is_pending(self):
        """Test a fresh job is pending with no result or error."""
        job = ReflectionJob(id="abc", topic="hope", verses=(VerseFactory(),))

        assert job.status is ReflectionJobStatus.PENDING
        assert job.result is None
        assert job.error is None
        assert job.completed_at is None
        assert not job.is_terminal

    def test_complete_sets_result_only(self):
        """Test completing a job sets the result and completion time."""
        job = ReflectionJob(id="abc", topic="hope")
        done = job.complete("A reflection")

        assert done.status is ReflectionJobStatus.COMPLETED
        assert done.result == "A reflection"
        assert done.error is None
        assert done.completed_at is not None
        assert done.is_terminal

    def test_fail_sets_error_only(self):
        """Test failing a job sets the error and clears any result."""
        job = ReflectionJob(id="abc", topic="hope")
        failed = job.fail("Failed to generate reflection")

        assert failed.status is ReflectionJobStatus.ERROR
        assert failed.error == "Failed to generate reflection"
        assert failed.result is None
        assert failed.is_terminal

    def test_transitions_do_not_mutate_original(self):
        """Test records are immutable and transitions return new records."""
        job = ReflectionJob(id="abc", topic="hope")
        job.complete("done")

        assert job.status is ReflectionJobStatus.PENDING
        with pytest.raises(ValidationError):
            job.status = ReflectionJobStatus.ERROR

    def test_completed_job_requires_result(self):
        """Test a completed record without a result is rejected."""
        with pytest.raises(ValidationError):
            ReflectionJob(id="abc", status=ReflectionJobStatus.COMPLETED)

    def test_pending_job_cannot_carry_error(self):
        """Test a pending record with an error is rejected."""
        with pytest.raises(ValidationError):
            ReflectionJob(id="abc", error="boom")

    def test_error_job_cannot_carry_result(self):
        """Test a failed record cannot also hold a result."""
        with pytest.raises(ValidationError):
            ReflectionJob(id="abc", status=ReflectionJobStatus.ERROR, error="x", result="y")

    def test_with_retry_keeps_pending(self):
        """Test recording a backoff leaves the job pending."""
        retry_after = datetime.now(timezone.utc) + timedelta(seconds=2)
        job = ReflectionJob(id="abc", topic="hope").with_retry(1, retry_after)

        assert job.status is ReflectionJobStatus.PENDING
        assert job.retry_count == 1
        assert job.retry_after == retry_after

    def test_public_view_hides_internals(self):
        """Test the client view only carries status, result and error."""
        job = ReflectionJob(id="abc", topic="hope", verses=(VerseFactory(),)).complete("text")

        assert job.public_view() == {"status": "completed", "result": "text", "error": None}

    def test_to_dict_serialization(self):
        """Test full record serialization for logs."""
        job = ReflectionJob(id="abc", topic="hope", verses=(VerseFactory(), VerseFactory()))
        result = job.to_dict()

        assert result["id"] == "abc"
        assert result["verse_count"] == 2
        assert result["status"] == "pending"
        assert result["completed_at"] is None
        assert "started_at" in result

    def test_status_enum(self):
        """Test ReflectionJobStatus enum values."""
        assert ReflectionJobStatus.PENDING.value == "pending"
        assert ReflectionJobStatus.COMPLETED.value == "completed"
        assert ReflectionJobStatus.ERROR.value == "error"


class TestVerseModel:
    """Tests for the Verse model."""

    def test_format_line(self):
        """Test prompt line rendering."""
        verse = Verse(reference="John 3:16", text="For God so loved the world")
        assert verse.format_line() == "John 3:16: For God so loved the world"

    def test_empty_fields_rejected(self):
        """Test a verse needs both reference and text."""
        with pytest.raises(ValidationError):
            Verse(reference="", text="text")
        with pytest.raises(ValidationError):
            Verse(reference="John 1:1", text="")

    def test_to_dict(self):
        """Test verse serialization."""
        verse = VerseFactory()
        assert verse.to_dict() == {"reference": verse.reference, "text": verse.text}


class TestRateLimitWindow:
    """Tests for the RateLimitWindow model."""

    def test_expires_strictly_after_window(self):
        """Test a window is still open at exactly its length."""
        window = RateLimitWindow(window_start=100.0)

        assert not window.is_expired(160.0, 60.0)
        assert window.is_expired(160.5, 60.0)

    def test_seconds_remaining_floors_at_zero(self):
        """Test remaining time never goes negative."""
        window = RateLimitWindow(window_start=100.0)

        assert window.seconds_remaining(130.0, 60.0) == 30.0
        assert window.seconds_remaining(500.0, 60.0) == 0.0
