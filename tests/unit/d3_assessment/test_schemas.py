"""
Tests for audit job and record schemas
"""
from datetime import timedelta

import pytest
from pydantic import ValidationError

from d3_assessment.combiner import ResultCombiner
from d3_assessment.schemas import AuditJob, AuditOptions, AuditRecord, is_valid_url
from d3_assessment.types import AuditPriority, AuditStatus

pytestmark = pytest.mark.unit


class TestUrlValidation:
    @pytest.mark.parametrize(
        "url,valid",
        [
            ("https://example.com", True),
            ("http://example.com/path?q=1", True),
            ("ftp://example.com", False),
            ("example.com", False),
            ("https://", False),
            ("", False),
            ("   ", False),
            (None, False),
            (123, False),
        ],
    )
    def test_is_valid_url(self, url, valid):
        assert is_valid_url(url) is valid


class TestAuditOptions:
    def test_defaults(self):
        options = AuditOptions()

        assert options.skip_semantic_check is False
        assert options.priority == AuditPriority.NORMAL
        assert options.callback_url is None

    def test_priority_is_case_insensitive(self):
        assert AuditOptions(priority="LOW").priority == AuditPriority.LOW

    def test_invalid_priority(self):
        with pytest.raises(ValidationError):
            AuditOptions(priority="urgent")

    def test_invalid_callback_url(self):
        with pytest.raises(ValidationError):
            AuditOptions(callback_url="not-a-url")


class TestAuditJob:
    def test_message_body_round_trip(self, audit_job):
        body = audit_job.to_message_body()
        restored = AuditJob.from_message_body(body, delivery_count=2)

        assert "delivery_count" not in body
        assert restored.job_id == audit_job.job_id
        assert restored.url == audit_job.url
        assert restored.submitted_at == audit_job.submitted_at
        assert restored.delivery_count == 2

    def test_rejects_invalid_url(self):
        with pytest.raises(ValidationError):
            AuditJob(job_id="audit-1", url="javascript:alert(1)")

    def test_rejects_empty_job_id(self):
        with pytest.raises(ValidationError):
            AuditJob(job_id="", url="https://example.com")


class TestAuditRecord:
    def test_pending_record(self, audit_job):
        record = AuditRecord.pending(audit_job, ttl_days=90)

        assert record.status == AuditStatus.PENDING
        assert not record.is_terminal
        assert record.expires_at - record.submitted_at == timedelta(days=90)
        assert record.compliance_score is None

    def test_expiry(self, audit_job):
        record = AuditRecord.pending(audit_job, ttl_days=1)

        assert not record.is_expired(audit_job.submitted_at + timedelta(hours=23))
        assert record.is_expired(audit_job.submitted_at + timedelta(days=1))

    def test_complete(self, audit_job, fetch_result):
        combiner = ResultCombiner()
        report = combiner.combine([{"id": "label", "impact": "critical", "tags": ["wcag412"]}], [])
        record = AuditRecord.pending(audit_job)

        completed = record.complete(report, combiner.summarize(report), fetch_result, 12.34567)

        assert completed.status == AuditStatus.COMPLETED
        assert completed.compliance_score == 90
        assert completed.total_issues == 1
        assert completed.violations[0]["id"] == "label"
        assert completed.summary["overall_score"] == 90
        assert completed.duration_seconds == 12.346
        assert completed.page_metadata["attempts"] == 1
        assert completed.screenshot == fetch_result.screenshot
        assert completed.scanned_at is not None
        # Original is untouched
        assert record.status == AuditStatus.PENDING

    def test_fail(self, audit_job):
        failed = AuditRecord.pending(audit_job).fail("net::ERR_NAME_NOT_RESOLVED", 3.0)

        assert failed.status == AuditStatus.FAILED
        assert failed.error == "net::ERR_NAME_NOT_RESOLVED"
        assert failed.is_terminal

    def test_terminal_record_cannot_transition_again(self, audit_job):
        failed = AuditRecord.pending(audit_job).fail("boom")

        with pytest.raises(ValueError):
            failed.fail("again")

    def test_json_round_trip_keeps_enums(self, audit_job):
        record = AuditRecord.pending(audit_job)
        restored = AuditRecord.model_validate_json(record.model_dump_json())

        assert restored.status == AuditStatus.PENDING
        assert restored.expires_at == record.expires_at
