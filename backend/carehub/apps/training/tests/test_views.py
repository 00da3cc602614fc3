from __future__ import annotations

from datetime import date

from carehub.apps.training import views
from carehub.apps.training.compliance import CompliancePolicy
from carehub.apps.training.errors import ScopeResolutionError
from carehub.apps.training.models import MandateLabel, PendingState, RecordStatus
from carehub.apps.training.roster import BANK, CompanyScope, Roster, resolve_roster

TODAY = date(2026, 10, 18)


def _catalogue(org, company):
    fire = org.course(company, "Fire Safety", refresher=1, due_soon=30, everyone=True)
    first_aid = org.course(company, "First Aid", refresher=3)
    dementia = org.course(company, "Dementia Care")
    manual = org.course(company, "Manual Handling", refresher=1)
    return fire, first_aid, dementia, manual


def test_my_training_summary_and_available_courses(db_session, org):
    company = org.company()
    oak = org.home(company, "Oak House")
    alice = org.staff(oak, "Alice")
    fire, first_aid, dementia, manual = _catalogue(org, company)
    org.target(first_aid, alice)
    org.record(alice, fire, date(2025, 11, 10))
    org.record(alice, first_aid, date(2026, 2, 1), certificate_ref="FA-22")
    org.record(alice, manual, date(2024, 5, 1))
    org.record(alice, dementia, None, due_by=date(2026, 10, 1))
    db_session.commit()

    view = views.my_training(db_session, person_id=alice.id, company_id=company.id, today=TODAY)

    by_course = {row.course_name: row for row in view.records}
    assert [row.course_name for row in view.records] == [
        "Dementia Care",
        "Fire Safety",
        "First Aid",
        "Manual Handling",
    ]
    assert by_course["Fire Safety"].status == RecordStatus.DUE_SOON
    assert by_course["Fire Safety"].next_due_date == date(2026, 11, 10)
    assert by_course["Fire Safety"].mandate_label == MandateLabel.YES
    assert by_course["First Aid"].mandate_label == MandateLabel.CONDITIONAL
    assert by_course["Manual Handling"].status == RecordStatus.OVERDUE
    assert by_course["Dementia Care"].status is None
    assert by_course["Dementia Care"].pending_state == PendingState.PAST_DUE

    assert (view.summary.total, view.summary.up_to_date, view.summary.due_soon, view.summary.overdue) == (
        3,
        1,
        1,
        1,
    )
    assert view.mandatory_total == 2
    assert view.mandatory_completed == 1
    assert view.available_courses == []

    lenient = views.my_training(
        db_session,
        person_id=alice.id,
        company_id=company.id,
        today=TODAY,
        policy=CompliancePolicy(due_soon_satisfies=True),
    )
    assert lenient.mandatory_completed == 2


def test_my_training_lists_courses_not_yet_held(db_session, org):
    company = org.company()
    oak = org.home(company, "Oak House")
    bob = org.staff(oak, "Bob")
    fire, first_aid, dementia, manual = _catalogue(org, company)
    org.record(bob, fire, date(2026, 9, 1))
    db_session.commit()

    view = views.my_training(db_session, person_id=bob.id, company_id=company.id, today=TODAY)

    assert [c.name for c in view.available_courses] == ["Dementia Care", "First Aid", "Manual Handling"]
    assert view.mandatory_total == 1
    assert view.mandatory_completed == 1


def test_my_training_without_company_is_empty():
    view = views.my_training(None, person_id="p1", company_id=None, today=TODAY)

    assert view.records == []
    assert view.mandatory_total == 0


def test_team_records_filters(db_session, org):
    company = org.company()
    oak = org.home(company, "Oak House")
    elm = org.home(company, "Elm Lodge")
    alice = org.staff(oak, "Alice")
    bob = org.staff(elm, "Bob")
    bella = org.bank(company, "Bella")
    fire, first_aid, dementia, manual = _catalogue(org, company)
    org.record(alice, fire, date(2026, 9, 1), certificate_ref="F-1")
    org.record(alice, manual, date(2024, 5, 1))
    org.record(bob, fire, date(2025, 11, 10))
    org.record(bella, dementia, None, due_by=date(2026, 12, 1))
    db_session.commit()

    roster = resolve_roster(db_session, CompanyScope(company.id))

    def names(**filters):
        view = views.team_records(db_session, roster, today=TODAY, **filters)
        assert view.error is None
        return [(r.person_name, r.course_name) for r in view.records]

    assert names() == [
        ("Alice", "Fire Safety"),
        ("Alice", "Manual Handling"),
        ("Bella", "Dementia Care"),
        ("Bob", "Fire Safety"),
    ]
    assert names(status="OVERDUE") == [("Alice", "Manual Handling")]
    assert names(status="DUE_SOON") == [("Bob", "Fire Safety")]
    assert names(status=views.PENDING_FILTER) == [("Bella", "Dementia Care")]
    assert names(has_certificate=True) == [("Alice", "Fire Safety")]
    assert names(mandate="YES") == [("Alice", "Fire Safety"), ("Bob", "Fire Safety")]
    assert names(home=elm.id) == [("Bob", "Fire Safety")]
    assert names(home=BANK) == [("Bella", "Dementia Care")]
    assert names(search="manual") == [("Alice", "Manual Handling")]


def test_team_records_reports_roster_error():
    view = views.team_records(None, Roster(error=ScopeResolutionError()), today=TODAY)

    assert view.records == []
    assert view.error == "Could not resolve the people in scope."
