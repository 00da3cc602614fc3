"""
Compliance Aggregator.

Joins each person's required courses (Mandate Resolver) with the courses
they currently satisfy (Record Status Engine) and derives:

- compliant / non-compliant people with the names of missing courses
- per-home rates, including a synthetic bank staff bucket
- single-course status breakdowns
- the CSV export of the non-compliant list

The pure functions here never touch the database. `build_report` gathers
the inputs and reports failures per section instead of raising.
"""

from __future__ import annotations

import csv
import enum
import io
import logging
import os
from collections import Counter
from dataclasses import dataclass, field
from datetime import date
from typing import Dict, FrozenSet, Iterable, List, Mapping, Optional, Set

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from . import mandates, models
from .roster import BANK, BANK_LABEL, Roster, RosterPerson, filter_people
from .status import best_status, status_for_dates

logger = logging.getLogger(__name__)

TOP_MISSING_LIMIT = 8
UNKNOWN_COURSE_NAME = "Unknown"
SELECTED_COURSE_NAME = "Selected course"
SECTION_ERROR_MESSAGE = "This section failed to load."
COURSE_NOT_FOUND_MESSAGE = "The selected course was not found."


def _env_flag(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


class ComplianceMode(str, enum.Enum):
    MANDATORY = "MANDATORY"
    COURSE = "COURSE"


@dataclass(frozen=True)
class CompliancePolicy:
    """Which record statuses satisfy a mandate. Strict by default."""

    due_soon_satisfies: bool = False

    @classmethod
    def from_env(cls) -> "CompliancePolicy":
        return cls(due_soon_satisfies=_env_flag("TRAINING_DUE_SOON_SATISFIES"))

    @property
    def satisfying_statuses(self) -> FrozenSet[models.RecordStatus]:
        if self.due_soon_satisfies:
            return frozenset({models.RecordStatus.UP_TO_DATE, models.RecordStatus.DUE_SOON})
        return frozenset({models.RecordStatus.UP_TO_DATE})

    def satisfies(self, status: Optional[models.RecordStatus]) -> bool:
        return status is not None and status in self.satisfying_statuses


STRICT_POLICY = CompliancePolicy()


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------


@dataclass
class NonCompliantEntry:
    person: RosterPerson
    missing_course_names: List[str]


@dataclass
class ComplianceResult:
    compliant: List[RosterPerson] = field(default_factory=list)
    non_compliant: List[NonCompliantEntry] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.compliant) + len(self.non_compliant)

    @property
    def rate(self) -> int:
        return percent(len(self.compliant), self.total)


@dataclass
class HomeBucket:
    id: str
    name: str
    compliant: int = 0
    total: int = 0

    @property
    def rate(self) -> int:
        return percent(self.compliant, self.total)


@dataclass
class CourseStatusCounts:
    up_to_date: int = 0
    due_soon: int = 0
    overdue: int = 0
    missing: int = 0


@dataclass
class CourseComplianceResult(ComplianceResult):
    statuses: Dict[str, Optional[models.RecordStatus]] = field(default_factory=dict)
    counts: CourseStatusCounts = field(default_factory=CourseStatusCounts)


# ---------------------------------------------------------------------------
# Pure aggregation
# ---------------------------------------------------------------------------


def percent(part: int, total: int) -> int:
    """part/total as a whole percentage, halves rounded up; 0 when total is 0."""
    if total <= 0:
        return 0
    return (200 * part + total) // (2 * total)


def satisfied_by_person(
    statuses: Mapping[str, Mapping[str, models.RecordStatus]],
    policy: CompliancePolicy = STRICT_POLICY,
) -> Dict[str, Set[str]]:
    """person id -> course ids whose status satisfies a mandate under `policy`."""
    return {
        person_id: {cid for cid, status in by_course.items() if policy.satisfies(status)}
        for person_id, by_course in statuses.items()
    }


def _sort_non_compliant(entries: List[NonCompliantEntry]) -> List[NonCompliantEntry]:
    return sorted(
        entries,
        key=lambda e: (e.person.name.lower(), len(e.missing_course_names), e.person.id),
    )


def compute_compliance(
    people: Iterable[RosterPerson],
    per_person_required: Mapping[str, Set[str]],
    satisfied: Mapping[str, Set[str]],
    course_names: Mapping[str, str],
) -> ComplianceResult:
    """
    Mandatory mode: each person against their full required set.

    A person with nothing required is trivially compliant.
    """
    result = ComplianceResult()
    for person in people:
        required = per_person_required.get(person.id) or set()
        got = satisfied.get(person.id) or set()
        missing = required - got
        if not missing:
            result.compliant.append(person)
            continue
        names = sorted(course_names.get(cid) or UNKNOWN_COURSE_NAME for cid in missing)
        result.non_compliant.append(NonCompliantEntry(person=person, missing_course_names=names))

    result.non_compliant = _sort_non_compliant(result.non_compliant)
    return result


def compute_course_compliance(
    people: Iterable[RosterPerson],
    course_id: str,
    statuses: Mapping[str, Mapping[str, models.RecordStatus]],
    course_name: Optional[str],
    policy: CompliancePolicy = STRICT_POLICY,
) -> CourseComplianceResult:
    """Single-course mode: everyone in scope against one course."""
    result = CourseComplianceResult()
    label = course_name or SELECTED_COURSE_NAME
    for person in people:
        status = (statuses.get(person.id) or {}).get(course_id)
        result.statuses[person.id] = status

        if status is None:
            result.counts.missing += 1
        elif status == models.RecordStatus.UP_TO_DATE:
            result.counts.up_to_date += 1
        elif status == models.RecordStatus.DUE_SOON:
            result.counts.due_soon += 1
        else:
            result.counts.overdue += 1

        if policy.satisfies(status):
            result.compliant.append(person)
        else:
            result.non_compliant.append(NonCompliantEntry(person=person, missing_course_names=[label]))

    result.non_compliant = _sort_non_compliant(result.non_compliant)
    return result


def home_breakdown(
    people: Iterable[RosterPerson],
    compliant_ids: Set[str],
    homes: Mapping[str, str],
) -> List[HomeBucket]:
    """Compliance rate per home plus a bank staff bucket; empty buckets are dropped."""
    buckets: Dict[str, HomeBucket] = {
        home_id: HomeBucket(id=home_id, name=name) for home_id, name in homes.items()
    }
    buckets[BANK] = HomeBucket(id=BANK, name=BANK_LABEL)

    for person in people:
        key = person.bucket
        bucket = buckets.get(key)
        if bucket is None:
            bucket = buckets[key] = HomeBucket(id=key, name=person.home_name or "Unknown")
        bucket.total += 1
        if person.id in compliant_ids:
            bucket.compliant += 1

    return sorted(
        (b for b in buckets.values() if b.total > 0),
        key=lambda b: (b.name.lower(), b.id),
    )


def top_missing(entries: Iterable[NonCompliantEntry], limit: int = TOP_MISSING_LIMIT) -> List[tuple]:
    """Most frequently missing course names as (name, count), most common first."""
    counter: Counter = Counter()
    for entry in entries:
        counter.update(entry.missing_course_names)
    ranked = sorted(counter.items(), key=lambda item: (-item[1], item[0].lower()))
    return ranked[:limit]


def csv_filename(mode: ComplianceMode) -> str:
    return f"compliance-{ComplianceMode(mode).value.lower()}.csv"


def export_csv(entries: Iterable[NonCompliantEntry], mode: ComplianceMode = ComplianceMode.MANDATORY) -> str:
    """
    Serialise the non-compliant list.

    Every cell is double-quoted with embedded quotes doubled; missing course
    names share one cell joined by " | ".
    """
    last_header = (
        "Missing mandatory courses" if ComplianceMode(mode) == ComplianceMode.MANDATORY else "Missing course"
    )
    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\n")
    writer.writerow(["Person", "Home", "Bank", last_header])
    for entry in entries:
        person = entry.person
        writer.writerow(
            [
                person.name,
                "" if person.is_bank else (person.home_name or ""),
                "Yes" if person.is_bank else "No",
                " | ".join(entry.missing_course_names),
            ]
        )
    return buffer.getvalue().rstrip("\n")


# ---------------------------------------------------------------------------
# Inputs from storage
# ---------------------------------------------------------------------------


def load_statuses(
    db: Session,
    *,
    company_id: str,
    person_ids: Iterable[str],
    today: date,
    course_id: Optional[str] = None,
) -> Dict[str, Dict[str, models.RecordStatus]]:
    """
    person id -> course id -> status for every completed record.

    Pending rows carry no status. Where one person has several rows for a
    course the best status wins.
    """
    ids = sorted({pid for pid in person_ids if pid})
    if not ids:
        return {}

    query = (
        db.query(
            models.CompletionRecord.person_id,
            models.CompletionRecord.course_id,
            models.CompletionRecord.date_completed,
            models.Course.refresher_interval_years,
            models.Course.due_soon_window_days,
        )
        .join(models.Course, models.Course.id == models.CompletionRecord.course_id)
        .filter(
            models.Course.company_id == company_id,
            models.CompletionRecord.person_id.in_(ids),
            models.CompletionRecord.date_completed.isnot(None),
        )
    )
    if course_id:
        query = query.filter(models.CompletionRecord.course_id == course_id)

    result: Dict[str, Dict[str, models.RecordStatus]] = {}
    for person_id, cid, completed, refresher, window in query.all():
        status = status_for_dates(
            completed,
            refresher_interval_years=refresher,
            due_soon_window_days=window,
            today=today,
        )
        by_course = result.setdefault(person_id, {})
        by_course[cid] = best_status(by_course.get(cid), status)
    return result


def course_names_for(db: Session, company_id: str) -> Dict[str, str]:
    rows = db.query(models.Course.id, models.Course.name).filter(models.Course.company_id == company_id).all()
    return {course_id: name for course_id, name in rows}


# ---------------------------------------------------------------------------
# Report
# ---------------------------------------------------------------------------


@dataclass
class ComplianceReport:
    mode: ComplianceMode
    course_id: Optional[str] = None
    people: List[RosterPerson] = field(default_factory=list)
    result: ComplianceResult = field(default_factory=ComplianceResult)
    by_home: List[HomeBucket] = field(default_factory=list)
    top_missing: List[tuple] = field(default_factory=list)
    course_counts: Optional[CourseStatusCounts] = None
    errors: Dict[str, str] = field(default_factory=dict)

    @property
    def total(self) -> int:
        return len(self.people)

    @property
    def compliant_count(self) -> int:
        return len(self.result.compliant)

    @property
    def non_compliant_count(self) -> int:
        return max(self.total - self.compliant_count, 0)

    @property
    def rate(self) -> int:
        return percent(self.compliant_count, self.total)


def build_report(
    db: Session,
    roster: Roster,
    *,
    today: date,
    mode: ComplianceMode = ComplianceMode.MANDATORY,
    course_id: Optional[str] = None,
    home: Optional[str] = None,
    search: Optional[str] = None,
    policy: CompliancePolicy = STRICT_POLICY,
) -> ComplianceReport:
    """
    Compose the analytics dashboard for a roster.

    Failures are recorded in `errors` under the section they broke
    ("roster", "course", "compliance") and never raised. A COURSE report
    for a course outside the roster's company sets "course".
    """
    mode = ComplianceMode(mode)
    report = ComplianceReport(mode=mode, course_id=course_id)

    if roster.error is not None:
        report.errors["roster"] = roster.error.message
        return report

    report.people = filter_people(roster.people, home=home, search=search)
    if mode == ComplianceMode.COURSE and not course_id:
        report.course_counts = CourseStatusCounts(missing=len(report.people))
        report.by_home = home_breakdown(report.people, set(), roster.homes)
        return report
    if not roster.company_id and mode == ComplianceMode.MANDATORY:
        # No company means no courses, so nothing can be required.
        report.result = ComplianceResult(compliant=list(report.people))
        report.by_home = home_breakdown(report.people, {p.id for p in report.people}, roster.homes)
        return report

    person_ids = [p.id for p in report.people]
    try:
        names = course_names_for(db, roster.company_id)
        if mode == ComplianceMode.MANDATORY:
            statuses = load_statuses(db, company_id=roster.company_id, person_ids=person_ids, today=today)
            required = mandates.required_by_person(db, roster.company_id, person_ids)
            report.result = compute_compliance(
                report.people,
                required,
                satisfied_by_person(statuses, policy),
                names,
            )
            report.top_missing = top_missing(report.result.non_compliant)
        else:
            if course_id not in names:
                report.errors["course"] = COURSE_NOT_FOUND_MESSAGE
                return report
            statuses = load_statuses(
                db,
                company_id=roster.company_id,
                person_ids=person_ids,
                today=today,
                course_id=course_id,
            )
            course_result = compute_course_compliance(
                report.people,
                course_id,
                statuses,
                names.get(course_id),
                policy,
            )
            report.result = course_result
            report.course_counts = course_result.counts
    except SQLAlchemyError:
        logger.warning(
            "Compliance inputs failed to load",
            exc_info=True,
            extra={"company_id": roster.company_id, "mode": mode.value},
        )
        report.errors["compliance"] = SECTION_ERROR_MESSAGE
        report.result = ComplianceResult()
        return report

    compliant_ids = {p.id for p in report.result.compliant}
    report.by_home = home_breakdown(report.people, compliant_ids, roster.homes)
    return report
