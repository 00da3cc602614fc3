from __future__ import annotations

from sqlalchemy.exc import OperationalError

from carehub.apps.accounts import models as account_models
from carehub.apps.training import roster as roster_mod
from carehub.apps.training.errors import ScopeResolutionError
from carehub.identifiers import short_id


def _setup(org):
    company = org.company()
    oak = org.home(company, "Oak House")
    elm = org.home(company, "Elm Lodge")
    alice = org.staff(oak, "Alice")
    bob = org.staff(elm, "Bob")
    bank = org.bank(company, "Bella Bank")
    manager = org.manager(oak, "Mo Manager")
    return company, oak, elm, alice, bob, bank, manager


def test_company_roster_merges_staff_bank_and_managers(db_session, org):
    company, oak, elm, alice, bob, bank, manager = _setup(org)
    db_session.commit()

    roster = roster_mod.resolve_roster(db_session, roster_mod.CompanyScope(company.id))

    assert roster.error is None
    assert roster.company_id == company.id
    assert roster.homes == {oak.id: "Oak House", elm.id: "Elm Lodge"}
    assert [p.name for p in roster.people] == ["Alice", "Bella Bank", "Bob", "Mo Manager"]

    by_id = {p.id: p for p in roster.people}
    assert by_id[alice.id].home_id == oak.id
    assert by_id[bank.id].is_bank and by_id[bank.id].home_label == "Bank staff"
    assert by_id[bank.id].bucket == roster_mod.BANK
    assert by_id[manager.id].home_id == oak.id
    assert by_id[manager.id].is_manager


def test_manager_without_records_is_in_company_roster(db_session, org):
    company = org.company()
    oak = org.home(company, "Oak House")
    manager = org.manager(oak, "Mo Manager")
    db_session.commit()

    roster = roster_mod.resolve_roster(db_session, roster_mod.CompanyScope(company.id))

    assert roster.ids == [manager.id]


def test_person_in_several_sources_appears_once(db_session, org):
    company = org.company()
    oak = org.home(company, "Oak House")
    elm = org.home(company, "Elm Lodge")
    dual = org.staff(oak, "Dual")
    org.manager(elm, person=dual)
    org.bank(company, person=dual)
    db_session.commit()

    roster = roster_mod.resolve_roster(db_session, roster_mod.CompanyScope(company.id))

    assert roster.ids == [dual.id]
    person = roster.people[0]
    assert person.home_id == oak.id
    assert person.is_bank is False
    assert person.managed_homes == {elm.id: account_models.ManagerSubrole.MANAGER}


def test_missing_profile_name_falls_back_to_short_id(db_session, org):
    company = org.company()
    oak = org.home(company, "Oak House")
    anonymous = org.staff(oak, None)
    db_session.commit()

    roster = roster_mod.resolve_roster(db_session, roster_mod.CompanyScope(company.id))

    assert roster.people[0].name == short_id(anonymous.id)
    assert len(roster.people[0].name) == 8


def test_manager_scope_includes_self_for_reads_only(db_session, org):
    company, oak, elm, alice, bob, bank, manager = _setup(org)
    deputy = org.manager(oak, "Dee Deputy", subrole=account_models.ManagerSubrole.DEPUTY)
    db_session.commit()

    scope = roster_mod.ManagerScope(manager.id)
    read = roster_mod.resolve_roster(db_session, scope)
    write = roster_mod.resolve_roster(db_session, scope, context=roster_mod.RosterContext.WRITE)

    assert set(read.ids) == {alice.id, manager.id, deputy.id}
    assert set(write.ids) == {alice.id, deputy.id}
    assert read.homes == {oak.id: "Oak House"}
    assert read.company_id == company.id
    assert bob.id not in read.ids and bank.id not in read.ids


def test_self_scope_returns_only_the_person(db_session, org):
    company, oak, elm, alice, bob, bank, manager = _setup(org)
    db_session.commit()

    staff_roster = roster_mod.resolve_roster(db_session, roster_mod.SelfScope(alice.id))
    bank_roster = roster_mod.resolve_roster(db_session, roster_mod.SelfScope(bank.id))

    assert staff_roster.ids == [alice.id]
    assert staff_roster.people[0].home_name == "Oak House"
    assert staff_roster.company_id == company.id
    assert bank_roster.ids == [bank.id]
    assert bank_roster.people[0].is_bank


def test_lookup_failure_yields_empty_roster_with_error(db_session, org, monkeypatch):
    company, *_ = _setup(org)
    db_session.commit()

    def boom(*args, **kwargs):
        raise OperationalError("SELECT", {}, Exception("connection lost"))

    monkeypatch.setattr(roster_mod.account_services, "lookup_names", boom)

    roster = roster_mod.resolve_roster(db_session, roster_mod.CompanyScope(company.id))

    assert roster.people == []
    assert isinstance(roster.error, ScopeResolutionError)
    assert roster.error is not None


def test_filter_people_by_home_bank_and_search(db_session, org):
    company, oak, elm, alice, bob, bank, manager = _setup(org)
    db_session.commit()
    roster = roster_mod.resolve_roster(db_session, roster_mod.CompanyScope(company.id))

    assert [p.id for p in roster_mod.filter_people(roster.people, home=roster_mod.BANK)] == [bank.id]
    assert {p.id for p in roster_mod.filter_people(roster.people, home=oak.id)} == {alice.id, manager.id}
    assert [p.id for p in roster_mod.filter_people(roster.people, search="  bo ")] == [bob.id]
