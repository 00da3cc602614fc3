from __future__ import annotations

import csv
import io
from datetime import date

import pytest

from carehub.apps.training import compliance
from carehub.apps.training.compliance import (
    ComplianceMode,
    CompliancePolicy,
    NonCompliantEntry,
)
from carehub.apps.training.errors import ScopeResolutionError
from carehub.apps.training.models import RecordStatus
from carehub.apps.training.roster import BANK, CompanyScope, Roster, RosterPerson, resolve_roster

TODAY = date(2026, 10, 18)


def _person(pid, name, home_id=None, home_name=None, is_bank=False):
    return RosterPerson(id=pid, name=name, home_id=home_id, home_name=home_name, is_bank=is_bank)


# ---------------------------------------------------------------------------
# Pure aggregation
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "part,total,expected",
    [(0, 0, 0), (1, 2, 50), (1, 3, 33), (2, 3, 67), (1, 8, 13), (3, 3, 100)],
)
def test_percent_rounds_half_up(part, total, expected):
    assert compliance.percent(part, total) == expected


def test_due_soon_is_not_compliant_under_strict_policy():
    people = [_person("p1", "Pat")]
    statuses = {"p1": {"c1": RecordStatus.DUE_SOON}}
    required = {"p1": {"c1"}}
    names = {"c1": "Fire Safety"}

    strict = compliance.compute_compliance(
        people, required, compliance.satisfied_by_person(statuses), names
    )
    lenient = compliance.compute_compliance(
        people,
        required,
        compliance.satisfied_by_person(statuses, CompliancePolicy(due_soon_satisfies=True)),
        names,
    )

    assert [e.missing_course_names for e in strict.non_compliant] == [["Fire Safety"]]
    assert [p.id for p in lenient.compliant] == ["p1"]


def test_nothing_required_is_compliant_and_missing_names_sorted():
    people = [_person("p1", "zoe"), _person("p2", "Adam"), _person("p3", "Bea")]
    required = {"p2": {"c1", "c2"}, "p3": {"c2"}}
    names = {"c1": "Moving & Handling", "c2": "Fire Safety"}

    result = compliance.compute_compliance(people, required, {}, names)

    assert [p.id for p in result.compliant] == ["p1"]
    assert [(e.person.id, e.missing_course_names) for e in result.non_compliant] == [
        ("p2", ["Fire Safety", "Moving & Handling"]),
        ("p3", ["Fire Safety"]),
    ]
    assert result.total == 3
    assert result.rate == 33


def test_course_mode_counts_and_policy():
    people = [_person("a", "A"), _person("b", "B"), _person("c", "C"), _person("d", "D")]
    statuses = {
        "a": {"c1": RecordStatus.UP_TO_DATE},
        "b": {"c1": RecordStatus.DUE_SOON},
        "c": {"c1": RecordStatus.OVERDUE},
    }

    result = compliance.compute_course_compliance(people, "c1", statuses, "Fire Safety")

    assert (result.counts.up_to_date, result.counts.due_soon, result.counts.overdue, result.counts.missing) == (
        1,
        1,
        1,
        1,
    )
    assert [p.id for p in result.compliant] == ["a"]
    assert result.statuses["d"] is None
    assert {e.missing_course_names[0] for e in result.non_compliant} == {"Fire Safety"}


def test_home_breakdown_uses_bank_bucket_and_drops_empty_homes():
    homes = {"h1": "Oak House", "h2": "Elm Lodge"}
    people = [
        _person("a", "A", "h1", "Oak House"),
        _person("b", "B", "h1", "Oak House"),
        _person("c", "C", is_bank=True),
    ]

    buckets = compliance.home_breakdown(people, {"a", "c"}, homes)

    assert [(b.id, b.name, b.compliant, b.total, b.rate) for b in buckets] == [
        (BANK, "Bank staff", 1, 1, 100),
        ("h1", "Oak House", 1, 2, 50),
    ]


def test_top_missing_ranks_by_count_and_caps_the_list():
    entries = []
    for i in range(10):
        names = [f"Course {n:02d}" for n in range(i + 1)]
        entries.append(NonCompliantEntry(person=_person(f"p{i}", f"P{i}"), missing_course_names=names))

    ranked = compliance.top_missing(entries)

    assert len(ranked) == compliance.TOP_MISSING_LIMIT
    assert ranked[0] == ("Course 00", 10)
    assert ranked[-1] == ("Course 07", 3)


def test_export_csv_quotes_every_cell_and_joins_missing_courses():
    entries = [
        NonCompliantEntry(
            person=_person("a", 'Ann "Nan" Smith', "h1", "Oak House"),
            missing_course_names=["Fire Safety", "Medication"],
        ),
        NonCompliantEntry(person=_person("b", "Bo", is_bank=True), missing_course_names=["Fire Safety"]),
    ]

    text = compliance.export_csv(entries)

    lines = text.split("\n")
    assert lines[0] == '"Person","Home","Bank","Missing mandatory courses"'
    assert lines[1] == '"Ann ""Nan"" Smith","Oak House","No","Fire Safety | Medication"'
    assert lines[2] == '"Bo","","Yes","Fire Safety"'
    assert not text.endswith("\n")
    assert list(csv.reader(io.StringIO(text)))[1][0] == 'Ann "Nan" Smith'


def test_export_csv_course_mode_header_and_filename():
    text = compliance.export_csv([], ComplianceMode.COURSE)

    assert text == '"Person","Home","Bank","Missing course"'
    assert compliance.csv_filename(ComplianceMode.MANDATORY) == "compliance-mandatory.csv"
    assert compliance.csv_filename("COURSE") == "compliance-course.csv"


# ---------------------------------------------------------------------------
# Report over storage
# ---------------------------------------------------------------------------


def test_fire_safety_due_soon_person_is_non_compliant(db_session, org):
    company = org.company()
    oak = org.home(company, "Oak House")
    never_trained = org.staff(oak, "Priya")
    due_soon = org.staff(oak, "Quinn")
    fire = org.course(company, "Fire Safety", refresher=1, due_soon=30, everyone=True)
    org.record(due_soon, fire, date(2025, 11, 10))
    db_session.commit()

    roster = resolve_roster(db_session, CompanyScope(company.id))
    report = compliance.build_report(db_session, roster, today=TODAY)

    assert report.errors == {}
    assert report.compliant_count == 0
    assert report.non_compliant_count == 2
    assert report.rate == 0
    assert [e.person.id for e in report.result.non_compliant] == [never_trained.id, due_soon.id]
    assert report.top_missing == [("Fire Safety", 2)]
    assert [(b.name, b.compliant, b.total) for b in report.by_home] == [("Oak House", 0, 2)]

    lenient = compliance.build_report(
        db_session, roster, today=TODAY, policy=CompliancePolicy(due_soon_satisfies=True)
    )
    assert [p.id for p in lenient.result.compliant] == [due_soon.id]
    assert lenient.rate == 50


def test_pending_assignment_does_not_satisfy(db_session, org):
    company = org.company()
    oak = org.home(company, "Oak House")
    alice = org.staff(oak, "Alice")
    fire = org.course(company, "Fire Safety", everyone=True)
    org.record(alice, fire, None, due_by=date(2026, 12, 1))
    db_session.commit()

    roster = resolve_roster(db_session, CompanyScope(company.id))
    report = compliance.build_report(db_session, roster, today=TODAY)

    assert report.non_compliant_count == 1


def test_report_course_mode_and_filters(db_session, org):
    company = org.company()
    oak = org.home(company, "Oak House")
    elm = org.home(company, "Elm Lodge")
    alice = org.staff(oak, "Alice")
    org.staff(elm, "Bob")
    first_aid = org.course(company, "First Aid", refresher=3)
    org.record(alice, first_aid, date(2026, 1, 5))
    db_session.commit()

    roster = resolve_roster(db_session, CompanyScope(company.id))
    report = compliance.build_report(
        db_session, roster, today=TODAY, mode=ComplianceMode.COURSE, course_id=first_aid.id
    )
    filtered = compliance.build_report(
        db_session,
        roster,
        today=TODAY,
        mode=ComplianceMode.COURSE,
        course_id=first_aid.id,
        home=elm.id,
    )

    assert report.course_counts.up_to_date == 1
    assert report.course_counts.missing == 1
    assert report.rate == 50
    assert report.top_missing == []
    assert filtered.total == 1
    assert filtered.rate == 0
    assert filtered.result.non_compliant[0].missing_course_names == ["First Aid"]


def test_course_mode_without_course_counts_everyone_missing(db_session, org):
    company = org.company()
    oak = org.home(company, "Oak House")
    org.staff(oak, "Alice")
    org.staff(oak, "Bob")
    db_session.commit()

    roster = resolve_roster(db_session, CompanyScope(company.id))
    report = compliance.build_report(db_session, roster, today=TODAY, mode=ComplianceMode.COURSE)

    assert report.course_counts.missing == 2
    assert report.rate == 0


def test_course_mode_with_foreign_course_reports_course_error(db_session, org):
    company = org.company()
    other = org.company("Other Care")
    oak = org.home(company, "Oak House")
    org.staff(oak, "Alice")
    elsewhere = org.course(other, "Dementia Care", refresher=2)
    db_session.commit()

    roster = resolve_roster(db_session, CompanyScope(company.id))
    for course_id in (elsewhere.id, "no-such-course"):
        report = compliance.build_report(
            db_session, roster, today=TODAY, mode=ComplianceMode.COURSE, course_id=course_id
        )

        assert report.errors == {"course": compliance.COURSE_NOT_FOUND_MESSAGE}
        assert report.result.non_compliant == []
        assert report.course_counts is None


def test_roster_error_is_reported_per_section():
    roster = Roster(error=ScopeResolutionError())

    report = compliance.build_report(None, roster, today=TODAY)

    assert report.errors == {"roster": "Could not resolve the people in scope."}
    assert report.total == 0
    assert report.rate == 0
