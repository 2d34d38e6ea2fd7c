from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest

from studyroom.core.config import Settings
from studyroom.core.constants import OVERLAP_ADMIN_OVERRIDE
from studyroom.core.enums import BillingStatus, CancellationReason, SessionStatus
from studyroom.core.exceptions import (
    ConflictException,
    ForbiddenException,
    InvalidTimeRangeException,
    MaxDurationExceededException,
    NotFoundException,
    RepositoryException,
    SchedulingLockedException,
    SeriesShiftRejectedException,
    ServiceException,
    SessionOverlapException,
    ValidationException,
)
from studyroom.models.session import TutoringSession
from studyroom.monitoring.prometheus_metrics import REGISTRY
from studyroom.services.session_service import SessionService

from tests.helpers import OTHER_TUTOR_ID, TUTOR_ID, sydney

NOW = datetime(2030, 3, 1, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def service(db) -> SessionService:
    return SessionService(db, clock=lambda: NOW)


def _reload(db, session_id: str) -> TutoringSession:
    db.expire_all()
    return db.get(TutoringSession, session_id)


class TestCreate:
    def test_persists_session(self, service, tutor, db):
        result = service.create_session(
            tutor, tutor_id=TUTOR_ID, start=sydney(2030, 3, 4, 16), end=sydney(2030, 3, 4, 17)
        )
        stored = _reload(db, result.session.id)
        assert result.created
        assert stored.duration_minutes == 60
        assert stored.status == SessionStatus.SCHEDULED.value
        assert stored.billing_status == BillingStatus.NOT_BILLED.value
        assert stored.start_at == sydney(2030, 3, 4, 16)

    def test_tutor_cannot_book_other_calendar(self, service, tutor):
        with pytest.raises(ForbiddenException):
            service.create_session(
                tutor,
                tutor_id=OTHER_TUTOR_ID,
                start=sydney(2030, 3, 4, 16),
                end=sydney(2030, 3, 4, 17),
            )

    def test_overlap_rejected_for_tutor(self, service, tutor, make_session, db):
        existing = make_session(sydney(2030, 3, 4, 16), sydney(2030, 3, 4, 17))
        with pytest.raises(SessionOverlapException) as exc_info:
            service.create_session(
                tutor,
                tutor_id=TUTOR_ID,
                start=sydney(2030, 3, 4, 17, 5),
                end=sydney(2030, 3, 4, 18),
            )
        assert exc_info.value.conflict_session_id == existing.id
        assert db.query(TutoringSession).count() == 1

    def test_admin_override_persists_with_warning(self, service, admin, make_session):
        existing = make_session(sydney(2030, 3, 4, 16), sydney(2030, 3, 4, 17))
        result = service.create_session(
            admin, tutor_id=TUTOR_ID, start=sydney(2030, 3, 4, 16), end=sydney(2030, 3, 4, 17)
        )
        assert result.warning == OVERLAP_ADMIN_OVERRIDE
        assert result.conflict_session_id == existing.id

    def test_create_uses_two_hour_ceiling(self, service, tutor):
        with pytest.raises(MaxDurationExceededException):
            service.create_session(
                tutor, tutor_id=TUTOR_ID, start=sydney(2030, 3, 4, 10), end=sydney(2030, 3, 4, 13)
            )

    def test_locked_calendar(self, service, tutor):
        @contextmanager
        def held(tutor_id, ttl_s=None):
            yield False

        with patch("studyroom.services.session_service.tutor_calendar_lock", held):
            with pytest.raises(SchedulingLockedException) as exc_info:
                service.create_session(
                    tutor,
                    tutor_id=TUTOR_ID,
                    start=sydney(2030, 3, 4, 16),
                    end=sydney(2030, 3, 4, 17),
                )
        assert exc_info.value.code == "SCHEDULING_LOCKED"
        assert exc_info.value.status_code == 409


class TestReschedule:
    def test_moves_session(self, service, tutor, make_session, db):
        session = make_session(sydney(2030, 3, 4, 16), sydney(2030, 3, 4, 17))
        result = service.reschedule_session(
            tutor, session.id, start=sydney(2030, 3, 4, 16, 30), end=sydney(2030, 3, 4, 17, 45)
        )
        stored = _reload(db, session.id)
        assert result.warning is None
        assert stored.start_at == sydney(2030, 3, 4, 16, 30)
        assert stored.duration_minutes == 75
        assert stored.updated_at == NOW

    def test_allows_longer_sessions_than_create(self, service, tutor, make_session):
        session = make_session(sydney(2030, 3, 4, 10), sydney(2030, 3, 4, 11))
        result = service.reschedule_session(
            tutor, session.id, start=sydney(2030, 3, 4, 10), end=sydney(2030, 3, 4, 14)
        )
        assert result.session.duration_minutes == 240

    def test_reschedule_ceiling(self, service, tutor, make_session):
        session = make_session(sydney(2030, 3, 4, 10), sydney(2030, 3, 4, 11))
        with pytest.raises(MaxDurationExceededException):
            service.reschedule_session(
                tutor, session.id, start=sydney(2030, 3, 4, 10), end=sydney(2030, 3, 4, 14, 1)
            )

    def test_minimum_duration(self, service, tutor, make_session):
        session = make_session(sydney(2030, 3, 4, 10), sydney(2030, 3, 4, 11))
        with pytest.raises(InvalidTimeRangeException) as exc_info:
            service.reschedule_session(
                tutor, session.id, start=sydney(2030, 3, 4, 10), end=sydney(2030, 3, 4, 10, 10)
            )
        assert exc_info.value.message == "Min duration is 15 minutes."

    def test_unparsed_times_rejected(self, service, tutor, make_session):
        session = make_session(sydney(2030, 3, 4, 10), sydney(2030, 3, 4, 11))
        with pytest.raises(InvalidTimeRangeException):
            service.reschedule_session(tutor, session.id, start=None, end=None)

    def test_missing_session(self, service, tutor):
        with pytest.raises(NotFoundException):
            service.reschedule_session(
                tutor, "missing", start=sydney(2030, 3, 4, 10), end=sydney(2030, 3, 4, 11)
            )

    def test_cancelled_session_rejected(self, service, tutor, make_session):
        session = make_session(
            sydney(2030, 3, 4, 10), sydney(2030, 3, 4, 11), status=SessionStatus.CANCELLED_PARENT
        )
        with pytest.raises(ValidationException) as exc_info:
            service.reschedule_session(
                tutor, session.id, start=sydney(2030, 3, 4, 12), end=sydney(2030, 3, 4, 13)
            )
        assert exc_info.value.code == "SESSION_CANCELLED"

    def test_overlap_with_itself_ignored(self, service, tutor, make_session):
        session = make_session(sydney(2030, 3, 4, 16), sydney(2030, 3, 4, 17))
        result = service.reschedule_session(
            tutor, session.id, start=sydney(2030, 3, 4, 16, 15), end=sydney(2030, 3, 4, 17, 15)
        )
        assert result.conflict_session_id is None

    def test_schedule_without_session_creates(self, service, tutor, db):
        result = service.schedule(
            tutor,
            session_id=None,
            tutor_id=TUTOR_ID,
            start=sydney(2030, 3, 4, 16),
            end=sydney(2030, 3, 4, 17),
        )
        assert result.created
        assert db.query(TutoringSession).count() == 1

    def test_schedule_requires_target(self, service, tutor):
        with pytest.raises(ValidationException) as exc_info:
            service.schedule(
                tutor,
                session_id=None,
                tutor_id=None,
                start=sydney(2030, 3, 4, 16),
                end=sydney(2030, 3, 4, 17),
            )
        assert exc_info.value.code == "MISSING_FIELDS"


@pytest.fixture
def weekly_series(make_session):
    """Mon/Wed 16:00-17:00 for two weeks."""
    days = [4, 6, 11, 13]
    return [
        make_session(sydney(2030, 3, d, 16), sydney(2030, 3, d, 17), series_key="series-1")
        for d in days
    ]


class TestRecurringUpdate:
    def test_edit_future_moves_all_later_occurrences(self, service, tutor, weekly_series, db):
        result = service.update_recurring(
            tutor,
            weekly_series[0].id,
            start=sydney(2030, 3, 4, 17),
            end=sydney(2030, 3, 4, 18),
            edit_future=True,
        )
        assert result.updated == 4
        expected = [sydney(2030, 3, d, 17) for d in (4, 6, 11, 13)]
        assert [_reload(db, s.id).start_at for s in weekly_series] == expected

    def test_earlier_occurrences_untouched(self, service, tutor, weekly_series, db):
        result = service.update_recurring(
            tutor,
            weekly_series[2].id,
            start=sydney(2030, 3, 11, 17),
            end=sydney(2030, 3, 11, 18),
            edit_future=True,
        )
        assert result.updated == 2
        assert _reload(db, weekly_series[0].id).start_at == sydney(2030, 3, 4, 16)
        assert _reload(db, weekly_series[1].id).start_at == sydney(2030, 3, 6, 16)
        assert _reload(db, weekly_series[3].id).start_at == sydney(2030, 3, 13, 17)

    def test_single_occurrence_only(self, service, tutor, weekly_series, db):
        result = service.update_recurring(
            tutor,
            weekly_series[0].id,
            start=sydney(2030, 3, 4, 17),
            end=sydney(2030, 3, 4, 18),
            edit_future=False,
        )
        assert result.updated == 1
        assert _reload(db, weekly_series[1].id).start_at == sydney(2030, 3, 6, 16)

    def test_cancelled_occurrences_move_with_series(self, service, tutor, weekly_series, db):
        cancelled = weekly_series[1]
        cancelled.status = SessionStatus.CANCELLED_PARENT.value
        db.commit()
        result = service.update_recurring(
            tutor,
            weekly_series[0].id,
            start=sydney(2030, 3, 4, 17),
            end=sydney(2030, 3, 4, 18),
            edit_future=True,
        )
        assert result.updated == 4
        assert cancelled.id in result.session_ids
        moved = _reload(db, cancelled.id)
        assert moved.start_at == sydney(2030, 3, 6, 17)
        assert moved.end_at == sydney(2030, 3, 6, 18)
        assert moved.status == SessionStatus.CANCELLED_PARENT.value

    def test_cancelled_occurrence_landing_on_booking_does_not_block(
        self, service, tutor, weekly_series, make_session, db
    ):
        cancelled = weekly_series[1]
        cancelled.status = SessionStatus.CANCELLED_STUDYROOM.value
        db.commit()
        make_session(sydney(2030, 3, 6, 17, 30), sydney(2030, 3, 6, 18, 30))
        result = service.update_recurring(
            tutor,
            weekly_series[0].id,
            start=sydney(2030, 3, 4, 17),
            end=sydney(2030, 3, 4, 18),
            edit_future=True,
        )
        assert result.updated == 4
        assert result.warnings == []
        assert _reload(db, cancelled.id).start_at == sydney(2030, 3, 6, 17)

    def test_conflict_on_later_occurrence_rejects_whole_shift(
        self, service, tutor, weekly_series, make_session, db
    ):
        blocker = make_session(sydney(2030, 3, 11, 17, 30), sydney(2030, 3, 11, 18, 30))
        with pytest.raises(SeriesShiftRejectedException) as exc_info:
            service.update_recurring(
                tutor,
                weekly_series[0].id,
                start=sydney(2030, 3, 4, 17),
                end=sydney(2030, 3, 4, 18),
                edit_future=True,
            )
        assert exc_info.value.status_code == 409
        assert exc_info.value.occurrence_id == weekly_series[2].id
        assert exc_info.value.details["conflict_session_id"] == blocker.id
        assert [_reload(db, s.id).start_at.hour for s in weekly_series] == [5, 5, 5, 5]

    def test_admin_gets_warnings_instead(self, service, admin, weekly_series, make_session):
        blocker = make_session(sydney(2030, 3, 11, 17, 30), sydney(2030, 3, 11, 18, 30))
        result = service.update_recurring(
            admin,
            weekly_series[0].id,
            start=sydney(2030, 3, 4, 17),
            end=sydney(2030, 3, 4, 18),
            edit_future=True,
        )
        assert result.updated == 4
        assert result.warnings == [
            {"session_id": weekly_series[2].id, "conflict_session_id": blocker.id}
        ]

    def test_static_rule_failure_names_occurrence(self, service, tutor, weekly_series):
        with pytest.raises(SeriesShiftRejectedException) as exc_info:
            service.update_recurring(
                tutor,
                weekly_series[0].id,
                start=sydney(2030, 3, 4, 19, 30),
                end=sydney(2030, 3, 4, 20, 30),
                edit_future=True,
            )
        assert exc_info.value.code == "OUTSIDE_TUTORING_WINDOW"
        assert exc_info.value.status_code == 400

    def test_same_day_occurrences_collide(self, service, tutor, make_session):
        morning = make_session(sydney(2030, 3, 4, 9), sydney(2030, 3, 4, 10), series_key="s2")
        make_session(sydney(2030, 3, 4, 15), sydney(2030, 3, 4, 16), series_key="s2")
        with pytest.raises(SeriesShiftRejectedException):
            service.update_recurring(
                tutor,
                morning.id,
                start=sydney(2030, 3, 4, 12),
                end=sydney(2030, 3, 4, 13),
                edit_future=True,
            )

    def test_write_failure_rolls_back_every_occurrence(self, service, tutor, weekly_series, db):
        real_bulk_update = service.repository.bulk_update

        def fail_after_write(updates):
            real_bulk_update(updates)
            raise RepositoryException("store unavailable")

        with patch.object(service.repository, "bulk_update", side_effect=fail_after_write):
            with pytest.raises(ServiceException):
                service.update_recurring(
                    tutor,
                    weekly_series[0].id,
                    start=sydney(2030, 3, 4, 17),
                    end=sydney(2030, 3, 4, 18),
                    edit_future=True,
                )
        assert [_reload(db, s.id).start_at for s in weekly_series] == [
            sydney(2030, 3, d, 16) for d in (4, 6, 11, 13)
        ]

    def test_malformed_interval_rejected_even_without_validation(self, db, tutor, weekly_series):
        service = SessionService(db, config=Settings(validate_series_shift=False), clock=lambda: NOW)
        with pytest.raises(InvalidTimeRangeException):
            service.update_recurring(
                tutor,
                weekly_series[0].id,
                start=sydney(2030, 3, 4, 18),
                end=sydney(2030, 3, 4, 17),
                edit_future=True,
            )

    def test_validation_can_be_disabled(self, db, tutor, weekly_series, make_session):
        make_session(sydney(2030, 3, 11, 17, 30), sydney(2030, 3, 11, 18, 30))
        service = SessionService(db, config=Settings(validate_series_shift=False), clock=lambda: NOW)
        result = service.update_recurring(
            tutor,
            weekly_series[0].id,
            start=sydney(2030, 3, 4, 17),
            end=sydney(2030, 3, 4, 18),
            edit_future=True,
        )
        assert result.updated == 4


class TestCancel:
    def test_late_cancellation_becomes_billable(self, service, tutor, make_session, db):
        session = make_session(NOW + timedelta(hours=6), NOW + timedelta(hours=7))
        result = service.cancel_session(tutor, session.id, CancellationReason.PARENT)
        stored = _reload(db, session.id)
        assert result.outcome.within_window
        assert result.outcome.invoice_triggered
        assert stored.status == SessionStatus.CANCELLED_PARENT.value
        assert stored.billing_status == BillingStatus.READY_TO_INVOICE.value
        assert stored.cancelled_at == NOW
        assert "late cancellation within 12 hours" in stored.cancel_reason

    def test_early_cancellation_of_invoiced_is_credited(self, service, admin, make_session, db):
        session = make_session(
            NOW + timedelta(hours=48),
            NOW + timedelta(hours=49),
            billing_status=BillingStatus.INVOICED,
            xero_invoice_id="INV-1",
        )
        result = service.cancel_session(admin, session.id, CancellationReason.STUDYROOM)
        stored = _reload(db, session.id)
        assert not result.outcome.within_window
        assert stored.status == SessionStatus.CANCELLED_STUDYROOM.value
        assert stored.billing_status == BillingStatus.CREDITED.value

    def test_cancelled_session_frees_the_slot(self, service, tutor, make_session):
        session = make_session(sydney(2030, 3, 4, 16), sydney(2030, 3, 4, 17))
        service.cancel_session(tutor, session.id, CancellationReason.PARENT)
        result = service.create_session(
            tutor, tutor_id=TUTOR_ID, start=sydney(2030, 3, 4, 16), end=sydney(2030, 3, 4, 17)
        )
        assert result.conflict_session_id is None

    def test_cancel_twice_rejected(self, service, tutor, make_session, db):
        session = make_session(NOW + timedelta(hours=6), NOW + timedelta(hours=7))
        service.cancel_session(tutor, session.id, CancellationReason.PARENT)
        with pytest.raises(ValidationException) as exc_info:
            service.cancel_session(tutor, session.id, CancellationReason.PARENT)
        assert exc_info.value.code == "SESSION_ALREADY_CANCELLED"

    def test_other_tutor_cannot_cancel(self, service, make_session):
        from studyroom.core.enums import AppRole
        from studyroom.principal import AuthorizationContext

        session = make_session(NOW + timedelta(hours=6), NOW + timedelta(hours=7))
        stranger = AuthorizationContext(user_id=OTHER_TUTOR_ID, role=AppRole.TUTOR)
        with pytest.raises(ForbiddenException):
            service.cancel_session(stranger, session.id, CancellationReason.PARENT)


class TestInvoices:
    def test_record_and_void(self, service, admin, make_session, db):
        session = make_session(sydney(2030, 3, 4, 16), sydney(2030, 3, 4, 17))
        service.record_invoice(admin, session.id, "INV-42")
        stored = _reload(db, session.id)
        assert stored.xero_invoice_id == "INV-42"
        assert stored.billing_status == BillingStatus.INVOICED.value

        service.void_invoice(admin, session.id)
        stored = _reload(db, session.id)
        assert stored.xero_invoice_id is None
        assert stored.billing_status == BillingStatus.READY_TO_INVOICE.value

    def test_second_invoice_conflicts(self, service, admin, make_session):
        session = make_session(
            sydney(2030, 3, 4, 16), sydney(2030, 3, 4, 17), xero_invoice_id="INV-1"
        )
        with pytest.raises(ConflictException) as exc_info:
            service.record_invoice(admin, session.id, "INV-2")
        assert exc_info.value.code == "INVOICE_ALREADY_EXISTS"

    def test_void_without_invoice(self, service, admin, make_session):
        session = make_session(sydney(2030, 3, 4, 16), sydney(2030, 3, 4, 17))
        with pytest.raises(ValidationException) as exc_info:
            service.void_invoice(admin, session.id)
        assert exc_info.value.code == "NO_INVOICE"


class TestReads:
    def test_list_window(self, service, tutor, make_session):
        inside = make_session(sydney(2030, 3, 4, 16), sydney(2030, 3, 4, 17))
        make_session(sydney(2030, 3, 20, 16), sydney(2030, 3, 20, 17))
        sessions = service.list_tutor_sessions(
            tutor, TUTOR_ID, sydney(2030, 3, 4, 0), sydney(2030, 3, 5, 0)
        )
        assert [s.id for s in sessions] == [inside.id]

    def test_list_excluding_cancelled(self, service, tutor, make_session):
        make_session(
            sydney(2030, 3, 4, 10), sydney(2030, 3, 4, 11), status=SessionStatus.CANCELLED_PARENT
        )
        sessions = service.list_tutor_sessions(
            tutor,
            TUTOR_ID,
            sydney(2030, 3, 4, 0),
            sydney(2030, 3, 5, 0),
            include_cancelled=False,
        )
        assert sessions == []

    def test_list_range_capped(self, service, tutor):
        with pytest.raises(ValidationException) as exc_info:
            service.list_tutor_sessions(
                tutor, TUTOR_ID, sydney(2030, 1, 1, 0), sydney(2030, 6, 1, 0)
            )
        assert exc_info.value.code == "RANGE_TOO_LARGE"

    def test_get_session_requires_access(self, service, make_session):
        from studyroom.core.enums import AppRole
        from studyroom.principal import AuthorizationContext

        session = make_session(sydney(2030, 3, 4, 16), sydney(2030, 3, 4, 17))
        stranger = AuthorizationContext(user_id=OTHER_TUTOR_ID, role=AppRole.TUTOR)
        with pytest.raises(ForbiddenException):
            service.get_session(stranger, session.id)


def _sample(name, **labels):
    return REGISTRY.get_sample_value(name, labels) or 0.0


def test_measured_operations_are_recorded(service, tutor):
    labels = {"service": "SessionService", "operation": "create_session"}
    before = _sample("studyroom_service_operations_total", status="success", **labels)
    service.create_session(
        tutor, tutor_id=TUTOR_ID, start=sydney(2030, 3, 4, 16), end=sydney(2030, 3, 4, 17)
    )
    after = _sample("studyroom_service_operations_total", status="success", **labels)
    assert after == before + 1


def test_failed_operations_are_recorded_with_error_type(service, tutor):
    labels = {"service": "SessionService", "operation": "create_session"}
    error_labels = {**labels, "error_type": "InvalidTimeRangeException"}
    before_errors = _sample("studyroom_errors_total", **error_labels)
    before_status = _sample("studyroom_service_operations_total", status="error", **labels)
    with pytest.raises(InvalidTimeRangeException):
        service.create_session(tutor, tutor_id=TUTOR_ID, start=None, end=sydney(2030, 3, 4, 17))
    assert _sample("studyroom_errors_total", **error_labels) == before_errors + 1
    after_status = _sample("studyroom_service_operations_total", status="error", **labels)
    assert after_status == before_status + 1
