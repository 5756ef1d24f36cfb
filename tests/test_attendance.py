"""Attendance test suite — clock sessions, reopen semantics, hours, status,
corrections, bulk marking, summaries and HTTP access rules.

Service-level tests pass explicit ``now`` values so the day and the
arrival status are deterministic.
"""

from __future__ import annotations

import uuid
from datetime import date, datetime, time, timezone

import pytest
from sqlalchemy import select

from manahr.attendance.schemas import AttendanceCreate, AttendanceUpdate
from manahr.attendance.service import AttendanceService
from manahr.common.audit import AuditTrail
from manahr.common.constants import AttendanceStatus, ClockState, UserStatus
from manahr.common.exceptions import ConflictError, NotFoundException, ValidationException
from tests.conftest import auth_headers_for, make_org, make_user

DAY = date(2026, 3, 2)


def at(hour: int, minute: int = 0, day: date = DAY) -> datetime:
    return datetime(day.year, day.month, day.day, hour, minute, tzinfo=timezone.utc)


async def _work_day(db, user, start: datetime, end=None, status=None):
    record, _ = await AttendanceService.mark_attendance(
        db, user.id, start, user.organization_code, status=status,
    )
    if end is not None:
        record = await AttendanceService.mark_check_out(
            db, record.id, end, user.organization_code,
        )
    return record


# ═════════════════════════════════════════════════════════════════════
# 1. CLOCK-IN / CLOCK-OUT
# ═════════════════════════════════════════════════════════════════════


async def test_clock_in_opens_record_for_local_day(db, employee):
    resp = await AttendanceService.clock_in(db, employee, now=at(9, 0))

    assert resp.is_update is False
    assert resp.is_logged_in is True
    assert resp.date == DAY
    assert resp.status == AttendanceStatus.present
    assert resp.check_in == at(9, 0)


async def test_full_day_with_break_spans_first_in_to_last_out(db, employee):
    first = await AttendanceService.clock_in(db, employee, now=at(9, 0))
    out1 = await AttendanceService.clock_out(db, employee, now=at(13, 0))
    assert out1.total_hours_today == 4.0
    assert out1.status == AttendanceStatus.present

    again = await AttendanceService.clock_in(db, employee, now=at(14, 0))
    assert again.is_update is True
    assert again.session_id == first.session_id
    assert again.check_in == at(9, 0)

    status = await AttendanceService.get_today_status(
        db, employee.id, "ACME", now=at(15, 0),
    )
    assert status.status == ClockState.clocked_in
    assert status.daily_summary.completed_hours == 4.0
    assert status.daily_summary.current_session_hours == 2.0
    assert status.daily_summary.total_hours == 6.0

    out2 = await AttendanceService.clock_out(db, employee, now=at(18, 0))
    assert out2.total_hours_today == 9.0
    assert out2.first_clock_in == at(9, 0)
    assert out2.last_clock_out == at(18, 0)

    status = await AttendanceService.get_today_status(
        db, employee.id, "ACME", now=at(19, 0),
    )
    assert status.status == ClockState.available
    assert status.daily_summary.total_hours == 9.0
    assert status.daily_summary.sessions_count == 1


async def test_one_record_per_day(db, employee):
    await AttendanceService.clock_in(db, employee, now=at(9, 0))
    await AttendanceService.clock_out(db, employee, now=at(10, 0))
    await AttendanceService.clock_in(db, employee, now=at(11, 0))
    await AttendanceService.clock_out(db, employee, now=at(12, 0))

    records = await AttendanceService.get_daily_attendance(db, DAY, "ACME")
    assert len(records) == 1
    assert records[0].total_hours == 3.0


async def test_clock_out_without_open_session_fails(db, employee):
    with pytest.raises(ValidationException) as exc_info:
        await AttendanceService.clock_out(db, employee, now=at(17, 0))
    assert "clock_out" in exc_info.value.errors


async def test_clock_in_rejects_status_other_than_wfh(db, employee):
    with pytest.raises(ValidationException):
        await AttendanceService.clock_in(
            db, employee, status=AttendanceStatus.late, now=at(9, 0),
        )


async def test_clock_in_writes_audit_entry(db, employee):
    resp = await AttendanceService.clock_in(db, employee, now=at(9, 0), ip_address="10.0.0.1")

    entry = (
        await db.execute(select(AuditTrail).where(AuditTrail.entity_id == resp.session_id))
    ).scalars().one()
    assert entry.action == "clock_in"
    assert entry.actor_id == employee.id
    assert entry.organization_code == "ACME"


async def test_inactive_employee_cannot_clock_in(db, org):
    user = await make_user(db, status=UserStatus.inactive)
    with pytest.raises(ValidationException):
        await AttendanceService.mark_attendance(db, user.id, at(9, 0), "ACME")


async def test_unknown_employee_is_404(db, org):
    with pytest.raises(NotFoundException):
        await AttendanceService.mark_attendance(db, uuid.uuid4(), at(9, 0), "ACME")


async def test_employee_of_other_tenant_is_404(db, employee):
    await make_org(db, code="WIDGE")
    with pytest.raises(NotFoundException):
        await AttendanceService.mark_attendance(db, employee.id, at(9, 0), "WIDGE")


# ═════════════════════════════════════════════════════════════════════
# 2. CHECK-OUT RULES AND HOURS
# ═════════════════════════════════════════════════════════════════════


async def test_check_out_must_follow_check_in(db, employee):
    record = await _work_day(db, employee, at(9, 0))
    for bad in (at(9, 0), at(8, 59)):
        with pytest.raises(ValidationException) as exc_info:
            await AttendanceService.mark_check_out(db, record.id, bad, "ACME")
        assert "check_out" in exc_info.value.errors


async def test_double_check_out_is_rejected(db, employee):
    record = await _work_day(db, employee, at(9, 0), at(17, 0))
    with pytest.raises(ValidationException):
        await AttendanceService.mark_check_out(db, record.id, at(18, 0), "ACME")


@pytest.mark.parametrize(
    "end, expected",
    [
        (at(16, 30), 7.5),
        (at(10, 20), 1.33),
        (at(9, 1), 0.02),
    ],
)
async def test_hours_are_rounded_to_two_decimals(db, employee, end, expected):
    record = await _work_day(db, employee, at(9, 0), end)
    assert record.total_hours == expected


async def test_short_day_closes_as_half_day(db, employee):
    record = await _work_day(db, employee, at(9, 0), at(11, 0))
    assert record.status == AttendanceStatus.half_day


async def test_reopening_half_day_restores_arrival_status(db, employee):
    await _work_day(db, employee, at(9, 0), at(10, 0))
    resp = await AttendanceService.clock_in(db, employee, now=at(11, 0))
    assert resp.is_update is True
    assert resp.status == AttendanceStatus.present

    status = await AttendanceService.get_today_status(db, employee.id, "ACME", now=at(11, 30))
    assert status.sessions[0].status == AttendanceStatus.present
    assert status.sessions[0].is_active is True


async def test_reopening_late_half_day_restores_late(db, employee):
    record, _ = await AttendanceService.mark_attendance(db, employee.id, at(10, 0), "ACME")
    record.status = AttendanceStatus.half_day
    record = await AttendanceService.mark_check_out(db, record.id, at(11, 0), "ACME")

    record, _ = await AttendanceService.mark_attendance(db, employee.id, at(12, 0), "ACME")
    assert record.status == AttendanceStatus.late


async def test_reopened_half_day_becomes_present(db, employee):
    await _work_day(db, employee, at(9, 0), at(11, 0))
    await AttendanceService.clock_in(db, employee, now=at(12, 0))
    out = await AttendanceService.clock_out(db, employee, now=at(17, 0))
    assert out.total_hours_today == 8.0
    assert out.status == AttendanceStatus.present


async def test_check_out_notes_are_appended(db, employee):
    record, _ = await AttendanceService.mark_attendance(
        db, employee.id, at(9, 0), "ACME", notes="office",
    )
    record = await AttendanceService.mark_check_out(
        db, record.id, at(17, 0), "ACME", notes="done",
    )
    assert record.notes == "office | Checkout: done"


# ═════════════════════════════════════════════════════════════════════
# 3. ARRIVAL STATUS
# ═════════════════════════════════════════════════════════════════════


async def test_arrival_within_threshold_is_present(db, employee):
    record = await _work_day(db, employee, at(9, 15))
    assert record.status == AttendanceStatus.present


async def test_arrival_after_threshold_is_late_and_stays_late(db, employee):
    record = await _work_day(db, employee, at(9, 16), at(18, 0))
    assert record.status == AttendanceStatus.late


async def test_work_from_home_survives_check_out(db, employee):
    resp = await AttendanceService.clock_in(
        db, employee, status=AttendanceStatus.work_from_home, now=at(10, 30),
    )
    assert resp.status == AttendanceStatus.work_from_home
    out = await AttendanceService.clock_out(db, employee, now=at(12, 0))
    assert out.status == AttendanceStatus.work_from_home


async def test_day_and_lateness_use_organization_timezone(db):
    await make_org(db, code="INDIA", tz="Asia/Kolkata", work_start=time(9, 30))
    user = await make_user(db, org="INDIA")

    # 04:00 UTC is 09:30 IST
    on_time = await _work_day(db, user, at(4, 0))
    assert on_time.status == AttendanceStatus.present
    assert on_time.date == DAY

    # 20:00 UTC on the 2nd is 01:30 IST on the 3rd
    next_day = await _work_day(db, user, at(20, 0))
    assert next_day.date == date(2026, 3, 3)
    assert next_day.id != on_time.id


# ═════════════════════════════════════════════════════════════════════
# 4. TODAY STATUS / RESET
# ═════════════════════════════════════════════════════════════════════


async def test_today_status_before_first_clock_in(db, employee):
    status = await AttendanceService.get_today_status(db, employee.id, "ACME", now=at(8, 0))
    assert status.status == ClockState.not_started
    assert status.can_clock_in is True
    assert status.can_clock_out is False
    assert status.sessions == []
    assert status.daily_summary.total_hours == 0.0


async def test_reset_today_deletes_the_day(db, employee):
    opened = await AttendanceService.clock_in(db, employee, now=at(9, 0))

    result = await AttendanceService.reset_today(db, employee.id, "ACME", today=DAY)
    assert result.deleted_count == 1
    assert result.deleted_ids == [opened.session_id]

    status = await AttendanceService.get_today_status(db, employee.id, "ACME", now=at(10, 0))
    assert status.status == ClockState.not_started

    again = await AttendanceService.clock_in(db, employee, now=at(10, 0))
    assert again.is_update is False
    assert again.check_in == at(10, 0)


async def test_reset_today_with_nothing_to_delete(db, employee):
    result = await AttendanceService.reset_today(db, employee.id, "ACME", today=DAY)
    assert result.deleted_count == 0


# ═════════════════════════════════════════════════════════════════════
# 5. CORRECTIONS
# ═════════════════════════════════════════════════════════════════════


async def test_update_recomputes_hours_and_bumps_version(db, employee, hr_user):
    record = await _work_day(db, employee, at(9, 0), at(17, 0))
    version = record.version

    updated = await AttendanceService.update_attendance(
        db,
        record.id,
        AttendanceUpdate(check_out=at(17, 30), version=version),
        "ACME",
        actor_id=hr_user.id,
    )
    assert updated.total_hours == 8.5
    assert updated.version == version + 1
    assert updated.updated_by == hr_user.id


async def test_update_with_stale_version_conflicts(db, employee, hr_user):
    record = await _work_day(db, employee, at(9, 0), at(17, 0))
    with pytest.raises(ConflictError):
        await AttendanceService.update_attendance(
            db,
            record.id,
            AttendanceUpdate(notes="fixed", version=record.version + 5),
            "ACME",
            actor_id=hr_user.id,
        )


async def test_update_rejects_inverted_times(db, employee, hr_user):
    record = await _work_day(db, employee, at(9, 0), at(17, 0))
    with pytest.raises(ValidationException):
        await AttendanceService.update_attendance(
            db, record.id, AttendanceUpdate(check_in=at(18, 0)), "ACME", actor_id=hr_user.id,
        )


async def test_explicit_status_override_wins(db, employee, hr_user):
    record = await _work_day(db, employee, at(9, 30), at(17, 0))
    assert record.status == AttendanceStatus.late

    updated = await AttendanceService.update_attendance(
        db,
        record.id,
        AttendanceUpdate(status=AttendanceStatus.present),
        "ACME",
        actor_id=hr_user.id,
    )
    assert updated.status == AttendanceStatus.present


async def test_delete_attendance(db, employee, hr_user):
    record = await _work_day(db, employee, at(9, 0), at(17, 0))
    await AttendanceService.delete_attendance(db, record.id, "ACME", actor_id=hr_user.id)
    with pytest.raises(NotFoundException):
        await AttendanceService.get_attendance_by_id(db, record.id, "ACME")


# ═════════════════════════════════════════════════════════════════════
# 6. BULK
# ═════════════════════════════════════════════════════════════════════


async def test_bulk_collects_failures(db, employee, hr_user):
    inactive = await make_user(db, status=UserStatus.inactive)
    rows = [
        AttendanceCreate(employee_id=employee.id, check_in=at(9, 0), check_out=at(17, 0)),
        AttendanceCreate(employee_id=inactive.id, check_in=at(9, 0)),
        AttendanceCreate(employee_id=uuid.uuid4(), check_in=at(9, 0)),
    ]
    result = await AttendanceService.bulk_mark_attendance(db, rows, "ACME", actor_id=hr_user.id)

    assert len(result.created) == 1
    assert result.created[0].total_hours == 8.0
    assert [f.index for f in result.failed] == [1, 2]


async def test_bulk_with_every_row_failing_raises(db, org, hr_user):
    rows = [AttendanceCreate(employee_id=uuid.uuid4(), check_in=at(9, 0))]
    with pytest.raises(ValidationException):
        await AttendanceService.bulk_mark_attendance(db, rows, "ACME", actor_id=hr_user.id)


async def test_bulk_status_is_kept(db, employee, hr_user):
    rows = [
        AttendanceCreate(
            employee_id=employee.id,
            check_in=at(9, 0),
            check_out=at(10, 0),
            status=AttendanceStatus.work_from_home,
        ),
    ]
    result = await AttendanceService.bulk_mark_attendance(db, rows, "ACME", actor_id=hr_user.id)
    assert result.created[0].status == AttendanceStatus.work_from_home


def test_create_schema_rejects_inverted_times():
    with pytest.raises(ValueError):
        AttendanceCreate(employee_id=uuid.uuid4(), check_in=at(17, 0), check_out=at(9, 0))


# ═════════════════════════════════════════════════════════════════════
# 7. SUMMARIES / REPORTS / STATS
# ═════════════════════════════════════════════════════════════════════


async def _month_of_records(db, user):
    await _work_day(db, user, at(9, 0, date(2026, 3, 2)), at(17, 0, date(2026, 3, 2)))
    await _work_day(db, user, at(10, 0, date(2026, 3, 3)), at(18, 0, date(2026, 3, 3)))
    await _work_day(db, user, at(9, 0, date(2026, 3, 4)), at(12, 0, date(2026, 3, 4)))
    await _work_day(db, user, at(9, 0, date(2026, 3, 5)), status=AttendanceStatus.absent)


async def test_employee_summary_weights_days(db, employee):
    await _month_of_records(db, employee)

    summary = await AttendanceService.get_employee_attendance_summary(
        db, employee.id, "ACME", 2026, 3,
    )
    assert summary.total_working_days == 4
    assert summary.present_days == 2.5
    assert summary.late_days == 1
    assert summary.half_days == 1
    assert summary.absent_days == 1
    assert summary.attendance_percentage == 62.5
    assert summary.total_hours == 19.0
    assert summary.average_hours == 7.6


async def test_yearly_summary_when_month_omitted(db, employee):
    await _month_of_records(db, employee)
    await _work_day(db, employee, at(9, 0, date(2026, 4, 1)), at(17, 0, date(2026, 4, 1)))

    summary = await AttendanceService.get_employee_attendance_summary(db, employee.id, "ACME", 2026)
    assert summary.month is None
    assert summary.total_working_days == 5


async def test_monthly_attendance_newest_first(db, employee):
    await _month_of_records(db, employee)
    monthly = await AttendanceService.get_monthly_attendance(db, employee.id, 2026, 3, "ACME")
    assert [r.date.day for r in monthly.records] == [5, 4, 3, 2]
    assert monthly.summary.present_days == 2.5


async def test_monthly_attendance_rejects_bad_month(db, employee):
    with pytest.raises(ValidationException):
        await AttendanceService.get_monthly_attendance(db, employee.id, 2026, 13, "ACME")


async def test_report_filters_and_counts(db, employee):
    await _month_of_records(db, employee)

    report = await AttendanceService.get_attendance_report(
        db, "ACME", date(2026, 3, 1), date(2026, 3, 31),
    )
    assert report.summary.total_records == 4
    assert report.summary.present_count == 1
    assert report.summary.late_count == 1

    late_only = await AttendanceService.get_attendance_report(
        db, "ACME", date(2026, 3, 1), date(2026, 3, 31), status=AttendanceStatus.late,
    )
    assert [r.date for r in late_only.records] == [date(2026, 3, 3)]


async def test_report_rejects_inverted_range(db, org):
    with pytest.raises(ValidationException):
        await AttendanceService.get_attendance_report(db, "ACME", date(2026, 3, 31), date(2026, 3, 1))


async def test_report_rejects_range_over_a_year(db, org):
    with pytest.raises(ValidationException):
        await AttendanceService.get_attendance_report(db, "ACME", date(2024, 1, 1), date(2026, 1, 1))


async def test_stats_for_today(db, employee, hr_user):
    other = await make_user(db, employee_code="E002")
    await _work_day(db, employee, at(9, 0), at(17, 0))
    await _work_day(db, other, at(10, 0))

    stats = await AttendanceService.get_attendance_stats(db, "ACME", today=DAY)
    assert stats.total_employees == 3
    assert stats.today.present == 1
    assert stats.today.late == 1
    assert stats.today.clocked_in_now == 1
    assert stats.today.not_marked == 1
    assert stats.this_month.total_records == 2
    assert stats.this_month.average_hours == 8.0


async def test_find_user_by_id_is_tenant_aware(db, employee):
    brief = await AttendanceService.find_user_by_id(db, employee.id, "ACME")
    assert brief.employee_code == "E001"
    assert brief.organization_code == "ACME"
    assert brief.status == UserStatus.active

    await make_org(db, code="WIDGE")
    assert await AttendanceService.find_user_by_id(db, employee.id, "WIDGE") is None


# ═════════════════════════════════════════════════════════════════════
# 8. HTTP
# ═════════════════════════════════════════════════════════════════════


async def test_http_clock_in_status_clock_out(client, employee_headers):
    resp = await client.post("/api/v1/attendance/clock-in", json={}, headers=employee_headers)
    assert resp.status_code == 200, resp.text
    assert resp.json()["is_logged_in"] is True

    resp = await client.get("/api/v1/attendance/status", headers=employee_headers)
    assert resp.status_code == 200
    assert resp.json()["status"] == "clocked_in"
    assert resp.json()["can_clock_out"] is True

    resp = await client.put(
        "/api/v1/attendance/clock-out", json={"notes": "bye"}, headers=employee_headers,
    )
    assert resp.status_code == 200, resp.text
    body = resp.json()
    assert body["is_logged_in"] is False
    assert body["total_hours_today"] < 0.1


async def test_http_clock_out_without_session_is_400(client, employee_headers):
    resp = await client.put("/api/v1/attendance/clock-out", json={}, headers=employee_headers)
    assert resp.status_code == 400
    assert "clock_out" in resp.json()["errors"]


async def test_http_reset_today(client, employee_headers):
    await client.post("/api/v1/attendance/clock-in", json={}, headers=employee_headers)
    resp = await client.delete("/api/v1/attendance/reset-today", headers=employee_headers)
    assert resp.status_code == 200
    assert resp.json()["deleted_count"] == 1


async def test_http_employee_cannot_view_colleague(client, db, employee, employee_headers):
    colleague = await make_user(db, email="colleague@acme.com")
    await db.commit()

    resp = await client.get(
        f"/api/v1/attendance/summary/{colleague.id}",
        params={"year": 2026},
        headers=employee_headers,
    )
    assert resp.status_code == 403

    resp = await client.get(
        f"/api/v1/attendance/summary/{employee.id}",
        params={"year": 2026},
        headers=employee_headers,
    )
    assert resp.status_code == 200


async def test_http_hr_views_any_employee(client, employee, hr_headers):
    resp = await client.get(
        f"/api/v1/attendance/monthly/{employee.id}/2026/3", headers=hr_headers,
    )
    assert resp.status_code == 200
    assert resp.json()["records"] == []


async def test_http_reports_need_reports_permission(client, employee_headers, hr_headers):
    resp = await client.get("/api/v1/attendance/stats", headers=employee_headers)
    assert resp.status_code == 403

    resp = await client.get("/api/v1/attendance/stats", headers=hr_headers)
    assert resp.status_code == 200


async def test_http_bulk_and_stale_update(client, db, employee, hr_headers):
    resp = await client.post(
        "/api/v1/attendance/bulk",
        json={
            "records": [
                {
                    "employee_id": str(employee.id),
                    "check_in": "2026-03-02T09:00:00Z",
                    "check_out": "2026-03-02T17:00:00Z",
                },
            ]
        },
        headers=hr_headers,
    )
    assert resp.status_code == 201, resp.text
    record = resp.json()["created"][0]
    assert record["total_hours"] == 8.0

    resp = await client.put(
        f"/api/v1/attendance/{record['id']}",
        json={"notes": "corrected", "version": record["version"] + 1},
        headers=hr_headers,
    )
    assert resp.status_code == 409

    resp = await client.put(
        f"/api/v1/attendance/{record['id']}",
        json={"notes": "corrected", "version": record["version"]},
        headers=hr_headers,
    )
    assert resp.status_code == 200
    assert resp.json()["notes"] == "corrected"


async def test_http_manager_lacks_bulk_import(client, db, manager):
    headers = await auth_headers_for(db, manager)
    await db.commit()
    resp = await client.post(
        "/api/v1/attendance/bulk",
        json={"records": [{"employee_id": str(manager.id), "check_in": "2026-03-02T09:00:00Z"}]},
        headers=headers,
    )
    assert resp.status_code == 403
