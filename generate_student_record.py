#!/usr/bin/env python3
"""
Synthetic Student Record Generator
=====================================================
Generates a self-consistent mock academic/financial record for one
fictitious student:

- Identity (name, student ID, mailing address)
- Statement / due / issue dates (due date 14-30 days after statement)
- Two terms of courses drawn from a major track and a common-core pool
- Letter grades and quality points per course
- Term GPA and cumulative GPA carried forward from a prior history
- Tuition, differential tuition and fee breakdown
- A conflict-free weekly meeting schedule for the current term

Usage:
    python generate_student_record.py
    python generate_student_record.py --seed 42
    python generate_student_record.py --output json --output-dir ./data
"""

from __future__ import annotations

import argparse
import json
import logging
import os
from dataclasses import dataclass, field, replace
from datetime import date, timedelta
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from pathlib import Path
from random import Random
from types import MappingProxyType
from typing import Any, Iterable, Mapping, Sequence, TypedDict, TypeVar

__all__ = [
    "StudentRecordGenerator",
    "StudentRecord",
    "CourseRecord",
    "GradedCourse",
    "TermStats",
    "CumulativeStats",
    "TuitionBreakdown",
    "ScheduleEntry",
    "BillingConfig",
    "RngProvider",
    "Grade",
    "Track",
    "College",
    "FeeTier",
    "RecordGenerationError",
    "InvalidTrackError",
    "UnknownCollegeError",
    "DivisionUndefinedError",
    "select_courses",
    "assign_grades",
    "compute_gpa",
    "compute_term_stats",
    "compute_cumulative",
    "compute_tuition",
    "assign_meetings",
    "has_time_conflict",
    "format_currency",
    "format_date",
]

logger = logging.getLogger(__name__)

T = TypeVar("T")


# ──────────────────────────────────────────────────────────────────────────────
# ERRORS
# ──────────────────────────────────────────────────────────────────────────────

class RecordGenerationError(Exception):
    """Base class for failures that abort record generation."""


class InvalidTrackError(RecordGenerationError, ValueError):
    """Track identifier has no registered course pool."""


class UnknownCollegeError(RecordGenerationError, ValueError):
    """College name has no registered fee tier."""


class DivisionUndefinedError(RecordGenerationError, ZeroDivisionError):
    """GPA requested over zero attempted hours."""


# ──────────────────────────────────────────────────────────────────────────────
# ENUMS (str, Enum so values serialize to JSON as plain strings)
# ──────────────────────────────────────────────────────────────────────────────

class Grade(str, Enum):
    A = "A"
    B = "B"
    C = "C"
    D = "D"
    F = "F"


class Track(str, Enum):
    COMPUTER_SCIENCE = "Computer Science"
    BUSINESS_ADMINISTRATION = "Business Administration"
    PSYCHOLOGY = "Psychology"
    BIOLOGY = "Biology"
    MARKETING = "Marketing"


class College(str, Enum):
    SCIENCE_AND_ENGINEERING = "College of Science and Engineering"
    BUSINESS = "McCoy College of Business"
    LIBERAL_ARTS = "College of Liberal Arts"


class FeeTier(str, Enum):
    BUSINESS = "business"
    SCIENCE = "science"
    DEFAULT = "default"


# ──────────────────────────────────────────────────────────────────────────────
# TYPED CONFIGURATION
# ──────────────────────────────────────────────────────────────────────────────

class TrackConfig(TypedDict):
    prefix: str
    program: str
    college: College


TRACKS: dict[Track, TrackConfig] = {
    Track.COMPUTER_SCIENCE: {
        "prefix": "CS", "program": "Bachelor of Science",
        "college": College.SCIENCE_AND_ENGINEERING,
    },
    Track.BUSINESS_ADMINISTRATION: {
        "prefix": "BA", "program": "Bachelor of Business Admin",
        "college": College.BUSINESS,
    },
    Track.PSYCHOLOGY: {
        "prefix": "PSY", "program": "Bachelor of Arts",
        "college": College.LIBERAL_ARTS,
    },
    Track.BIOLOGY: {
        "prefix": "BIO", "program": "Bachelor of Science",
        "college": College.SCIENCE_AND_ENGINEERING,
    },
    Track.MARKETING: {
        "prefix": "MKT", "program": "Bachelor of Business Admin",
        "college": College.BUSINESS,
    },
}

UNIVERSITY_NAME = "Hajimi University"

COURSES_PER_TERM = 5
MAJOR_COURSES_RANGE = (2, 3)


@dataclass(frozen=True)
class CourseRecord:
    """Immutable catalog entry."""
    code: str
    name: str
    credit_hours: Decimal


def _catalog(rows: Iterable[tuple[str, str, int]]) -> tuple[CourseRecord, ...]:
    return tuple(CourseRecord(code, name, Decimal(hours)) for code, name, hours in rows)


COMMON_CORE: tuple[CourseRecord, ...] = _catalog([
    ("ENG 1310", "College Writing I", 3),
    ("ENG 1320", "College Writing II", 3),
    ("HIST 1310", "History of US to 1877", 3),
    ("POSI 2310", "Principles of American Govt", 3),
    ("COMM 1310", "Fund. of Human Communication", 3),
    ("PHIL 1305", "Philosophy & Critical Thinking", 3),
    ("ART 2313", "Introduction to Fine Arts", 3),
])

MAJOR_COURSE_POOLS: dict[Track, tuple[CourseRecord, ...]] = {
    Track.COMPUTER_SCIENCE: _catalog([
        ("CS 1428", "Foundations of Computer Science I", 4),
        ("CS 2308", "Foundations of Computer Science II", 3),
        ("CS 3358", "Data Structures", 3),
        ("MATH 2471", "Calculus I", 4),
        ("MATH 2358", "Discrete Mathematics I", 3),
    ]),
    Track.BUSINESS_ADMINISTRATION: _catalog([
        ("MGT 3303", "Management of Organizations", 3),
        ("MKT 3343", "Principles of Marketing", 3),
        ("ACC 2361", "Intro to Financial Accounting", 3),
        ("ECO 2314", "Principles of Microeconomics", 3),
        ("FIN 3312", "Business Finance", 3),
    ]),
    Track.PSYCHOLOGY: _catalog([
        ("PSY 1300", "Introduction to Psychology", 3),
        ("PSY 3300", "Lifespan Development", 3),
        ("PSY 3322", "Brain and Behavior", 3),
        ("SOC 1310", "Introduction to Sociology", 3),
        ("PSY 3341", "Cognitive Processes", 3),
    ]),
    Track.BIOLOGY: _catalog([
        ("BIO 1330", "Functional Biology", 3),
        ("BIO 1130", "Functional Biology Lab", 1),
        ("CHEM 1341", "General Chemistry I", 3),
        ("CHEM 1141", "General Chemistry I Lab", 1),
        ("BIO 2450", "Genetics", 4),
    ]),
    Track.MARKETING: _catalog([
        ("MKT 3350", "Consumer Behavior", 3),
        ("MKT 3358", "Professional Selling", 3),
        ("MKT 4330", "Promotional Strategy", 3),
        ("BLAW 2361", "Legal Environment of Business", 3),
        ("QMST 2333", "Business Statistics", 3),
    ]),
}

GRADE_POINTS: dict[Grade, Decimal] = {
    Grade.A: Decimal(4), Grade.B: Decimal(3), Grade.C: Decimal(2),
    Grade.D: Decimal(1), Grade.F: Decimal(0),
}

# Strong-student profile: only A and B are ever drawn, at 2:1 odds.
GRADE_WEIGHTS: dict[Grade, int] = {
    Grade.A: 4, Grade.B: 2, Grade.C: 0, Grade.D: 0, Grade.F: 0,
}

GPA_UNDEFINED = Decimal("0.00")
TWO_PLACES = Decimal("0.01")

PRIOR_HOURS_RANGE = (15, 60)
PRIOR_GPA_RANGE = (3.2, 4.0)

COLLEGE_FEE_TIERS: dict[College, FeeTier] = {
    College.BUSINESS: FeeTier.BUSINESS,
    College.SCIENCE_AND_ENGINEERING: FeeTier.SCIENCE,
    College.LIBERAL_ARTS: FeeTier.DEFAULT,
}

DIFFERENTIAL_TUITION: dict[FeeTier, Decimal] = {
    FeeTier.BUSINESS: Decimal(1100),
    FeeTier.SCIENCE: Decimal(975),
    FeeTier.DEFAULT: Decimal(850),
}

FEE_SCHEDULE: dict[str, Decimal] = {
    "student_service": Decimal(340),
    "computer_service": Decimal(210),
    "library": Decimal(150),
    "medical": Decimal(95),
    "other": Decimal(680),
    "international_operations": Decimal(75),
    "insurance": Decimal(1650),
}

FEE_LABELS: dict[str, str] = {
    "student_service": "Student Service Fee",
    "computer_service": "Computer Service Fee",
    "library": "Library Fee",
    "medical": "Medical Service Fee",
    "other": "Other Fees",
    "international_operations": "International Operations Fee",
    "insurance": "Health Insurance",
}

STATEMENT_LOOKBACK_DAYS = 182
DUE_OFFSET_DAYS = (14, 30)
ISSUE_LOOKBACK_DAYS = 5

TIME_SLOTS = [
    ("08:00", "09:15"), ("09:30", "10:45"), ("11:00", "12:15"),
    ("13:00", "14:15"), ("14:30", "15:45"), ("16:00", "17:15"),
    ("18:00", "19:15"), ("19:30", "20:45"),
]

DAYS_PATTERNS = ["MWF", "TR", "MW", "WF", "MTWRF"]

BUILDINGS = [
    "Science Hall", "Liberal Arts", "Engineering Bldg",
    "Business School", "Main Hall", "Health Sciences",
]

INSTRUCTORS = [
    "Dr. Thompson", "Dr. Ramirez", "Prof. Chen", "Dr. Williams",
    "Prof. Nakamura", "Dr. Okafor", "Prof. Santos", "Dr. Mueller",
    "Prof. Eriksson", "Dr. Patel", "Prof. Kim", "Dr. Ali",
]

FIRST_NAMES = [
    "Emma", "Liam", "Olivia", "Noah", "Ava", "James", "Sophia", "Lucas",
    "Isabella", "Mason", "Mia", "Ethan", "Amelia", "Aiden", "Harper",
    "Carlos", "Maria", "Wei", "Aisha", "Raj", "Fatima", "Yuki", "Ahmed",
    "Priya", "Diego", "Mei", "Omar", "Sana", "Jamal", "Leila",
    "Andres", "Keiko", "Hassan", "Zara", "Jin", "Valentina", "Kwame",
]

LAST_NAMES = [
    "Smith", "Johnson", "Williams", "Brown", "Jones", "Garcia", "Miller",
    "Davis", "Rodriguez", "Martinez", "Chen", "Wang", "Kim", "Patel",
    "Singh", "Nguyen", "Ali", "Lopez", "Lee", "Gonzalez", "Wilson",
    "Anderson", "Thomas", "Taylor", "Moore", "Jackson", "Martin", "White",
    "Santos", "Petrov", "Nakamura", "Okonkwo", "Eriksson", "Fernandez",
]

STREET_NAMES = [
    "Oak", "Maple", "Cedar", "Pine", "Elm", "Willow", "Lakeview", "Hillcrest",
    "Sunset", "Riverside", "Meadow", "Park", "Highland", "Ridge", "Spring",
]

STREET_SUFFIXES = ["St", "Ave", "Blvd", "Dr", "Ln", "Rd", "Way", "Ct"]

CITIES: list[tuple[str, str]] = [
    ("San Marcos", "Texas"), ("Austin", "Texas"), ("Round Rock", "Texas"),
    ("Denver", "Colorado"), ("Phoenix", "Arizona"), ("Portland", "Oregon"),
    ("Columbus", "Ohio"), ("Raleigh", "North Carolina"),
    ("Madison", "Wisconsin"), ("Sacramento", "California"),
]


# ──────────────────────────────────────────────────────────────────────────────
# RNG PROVIDER
# ──────────────────────────────────────────────────────────────────────────────

class RngProvider:
    """
    Explicit source of randomness for record generation.

    Distributions:
    - integer(lo, hi): uniform over the inclusive integer range
    - uniform(lo, hi): uniform float in [lo, hi]
    - weighted(items, weights): categorical draw, zero weights never drawn
    - sample(items, k): k distinct items, uniform without replacement
    - date_between(start, end): uniform over the inclusive day range

    A seeded provider yields the same sequence on every run.
    """

    def __init__(self, seed: int | None = None):
        self.seed = seed
        self._random = Random(seed)

    def integer(self, lo: int, hi: int) -> int:
        return self._random.randint(lo, hi)

    def uniform(self, lo: float, hi: float) -> float:
        return self._random.uniform(lo, hi)

    def choice(self, items: Sequence[T]) -> T:
        return self._random.choice(items)

    def weighted(self, items: Sequence[T], weights: Sequence[float]) -> T:
        return self._random.choices(items, weights=weights, k=1)[0]

    def sample(self, items: Sequence[T], k: int) -> list[T]:
        return self._random.sample(list(items), k)

    def shuffled(self, items: Sequence[T]) -> list[T]:
        out = list(items)
        self._random.shuffle(out)
        return out

    def digits(self, n: int) -> str:
        return "".join(str(self._random.randint(0, 9)) for _ in range(n))

    def date_between(self, start: date, end: date) -> date:
        if end < start:
            raise ValueError(f"date range is empty: {start} > {end}")
        return start + timedelta(days=self._random.randint(0, (end - start).days))


# ──────────────────────────────────────────────────────────────────────────────
# DATA MODELS
# ──────────────────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class GradedCourse:
    """A catalog course with its letter grade and quality points."""
    code: str
    name: str
    credit_hours: Decimal
    grade: Grade
    quality_points: Decimal

    def __post_init__(self):
        expected = self.credit_hours * GRADE_POINTS[self.grade]
        if self.quality_points != expected:
            raise ValueError(
                f"{self.code}: quality_points {self.quality_points} != "
                f"{self.credit_hours} x {GRADE_POINTS[self.grade]}"
            )

    @classmethod
    def from_course(cls, course: CourseRecord, grade: Grade) -> GradedCourse:
        return cls(
            code=course.code,
            name=course.name,
            credit_hours=course.credit_hours,
            grade=grade,
            quality_points=course.credit_hours * GRADE_POINTS[grade],
        )

    def to_row(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "name": self.name,
            "hours": f"{self.credit_hours:.2f}",
            "grade": self.grade.value,
            "quality_points": f"{self.quality_points:.2f}",
        }


@dataclass(frozen=True)
class TermStats:
    """Attempted/earned hours, quality points and GPA for one term."""
    attempted_hours: Decimal
    earned_hours: Decimal
    quality_points: Decimal
    gpa: Decimal

    def to_row(self) -> dict[str, str]:
        return {
            "attempted": f"{self.attempted_hours:.2f}",
            "earned": f"{self.earned_hours:.2f}",
            "quality_points": f"{self.quality_points:.2f}",
            "gpa": f"{self.gpa:.2f}",
        }


@dataclass(frozen=True)
class CumulativeStats(TermStats):
    """Term statistics over the prior history plus every generated term."""
    prior_hours: Decimal = Decimal(0)
    prior_gpa: Decimal = Decimal(0)
    prior_quality_points: Decimal = Decimal(0)


@dataclass(frozen=True)
class TuitionBreakdown:
    base: Decimal
    differential: Decimal
    fees: Mapping[str, Decimal] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, "fees", MappingProxyType(dict(self.fees)))

    def __hash__(self):
        return hash((self.base, self.differential, tuple(self.fees.items())))

    @property
    def fee_total(self) -> Decimal:
        """Fixed fees plus differential tuition."""
        return sum(self.fees.values(), Decimal(0)) + self.differential

    @property
    def total(self) -> Decimal:
        return self.base + self.fee_total

    def to_row(self) -> dict[str, Any]:
        return {
            "base": format_currency(self.base),
            "differential": format_currency(self.differential),
            "fees": {name: format_currency(amount) for name, amount in self.fees.items()},
            "fee_total": format_currency(self.fee_total),
            "total": format_currency(self.total),
        }


@dataclass(frozen=True)
class ScheduleEntry:
    """Weekly meeting of one course."""
    code: str
    name: str
    credit_hours: Decimal
    days: str
    start_time: str
    end_time: str
    room: str
    instructor: str

    @property
    def time_range(self) -> str:
        return f"{self.start_time}-{self.end_time}"


@dataclass(frozen=True)
class StudentRecord:
    """Complete synthetic record. Replaced wholesale on regeneration."""
    university_name: str
    student_name: str
    student_id: str
    address: str
    term: str
    next_term: str
    track: Track
    major: str
    program: str
    college: str
    statement_date: date
    due_date: date
    issue_date: date
    current_courses: tuple[GradedCourse, ...]
    next_courses: tuple[GradedCourse, ...]
    current_stats: TermStats
    next_stats: TermStats
    cumulative: CumulativeStats
    tuition: TuitionBreakdown
    schedule: tuple[ScheduleEntry, ...] = ()
    seed: int | None = None

    def with_overrides(self, **fields: Any) -> StudentRecord:
        """Copy with user-edited display fields applied."""
        return replace(self, **fields)

    def to_dict(self) -> dict[str, Any]:
        """Display form: dates MM/DD/YYYY, currency strings, 2-place decimals."""
        return {
            "university_name": self.university_name,
            "student_name": self.student_name,
            "student_id": self.student_id,
            "address": self.address,
            "term": self.term,
            "next_term": self.next_term,
            "major": self.major,
            "program": self.program,
            "college": self.college,
            "statement_date": format_date(self.statement_date),
            "due_date": format_date(self.due_date),
            "issue_date": format_date(self.issue_date),
            "tuition": self.tuition.to_row(),
            "courses": {
                "current": [c.to_row() for c in self.current_courses],
                "next": [c.to_row() for c in self.next_courses],
            },
            "stats": {
                "current": self.current_stats.to_row(),
                "next": self.next_stats.to_row(),
                "cumulative": self.cumulative.to_row(),
            },
            "schedule": [
                {
                    "code": e.code, "name": e.name, "days": e.days,
                    "time": e.time_range, "room": e.room,
                    "instructor": e.instructor, "hours": f"{e.credit_hours:.2f}",
                }
                for e in self.schedule
            ],
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), indent=2)


# ──────────────────────────────────────────────────────────────────────────────
# FORMATTING (presentation only)
# ──────────────────────────────────────────────────────────────────────────────

def format_currency(amount: Decimal | int | float) -> str:
    """US-locale currency string, e.g. ``$13,775.00``."""
    value = Decimal(str(amount)).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)
    sign = "-" if value < 0 else ""
    return f"{sign}${abs(value):,.2f}"


def format_date(value: date) -> str:
    """US date, zero-padded ``MM/DD/YYYY``."""
    return value.strftime("%m/%d/%Y")


# ──────────────────────────────────────────────────────────────────────────────
# BUSINESS RULES (pure functions over an injected RngProvider)
# ──────────────────────────────────────────────────────────────────────────────

def _coerce_track(track: Track | str) -> Track:
    if isinstance(track, Track):
        return track
    try:
        return Track(track)
    except ValueError:
        raise InvalidTrackError(f"unknown track: {track!r}") from None


def select_courses(
    rng: RngProvider,
    track: Track | str,
    pools: dict[Track, Sequence[CourseRecord]] = MAJOR_COURSE_POOLS,
    common: Sequence[CourseRecord] = COMMON_CORE,
) -> list[CourseRecord]:
    """
    Pick one term's courses: 2-3 from the track pool, the rest common core.
    Both draws are without replacement; the result has no duplicates.
    """
    key = _coerce_track(track)
    pool = pools.get(key)
    if not pool:
        raise InvalidTrackError(f"no course pool registered for track {key.value!r}")

    num_major = rng.integer(*MAJOR_COURSES_RANGE)
    num_common = COURSES_PER_TERM - num_major
    if len(pool) < num_major or len(common) < num_common:
        raise InvalidTrackError(
            f"course pools for {key.value!r} are too small for a {COURSES_PER_TERM}-course term"
        )
    major = rng.sample(pool, num_major)
    core = rng.sample(common, num_common)
    logger.debug("Selected %d major + %d core courses for %s", num_major, num_common, key.value)
    return major + core


def assign_grades(
    rng: RngProvider,
    courses: Sequence[CourseRecord],
    weights: dict[Grade, int] = GRADE_WEIGHTS,
) -> list[GradedCourse]:
    """Draw an independent letter grade for each course."""
    grades = list(weights)
    grade_weights = [weights[g] for g in grades]
    return [
        GradedCourse.from_course(course, rng.weighted(grades, grade_weights))
        for course in courses
    ]


def round_half_up(value: Decimal) -> Decimal:
    return value.quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def compute_gpa(
    quality_points: Decimal,
    attempted_hours: Decimal,
    default: Decimal | None = None,
) -> Decimal:
    """
    quality_points / attempted_hours rounded half-up to 2 places.

    Zero hours raise DivisionUndefinedError unless a ``default`` sentinel
    (usually GPA_UNDEFINED) is given, in which case it is returned as-is.
    """
    if attempted_hours == 0:
        if default is None:
            raise DivisionUndefinedError("GPA is undefined for zero attempted hours")
        return default
    return round_half_up(Decimal(quality_points) / Decimal(attempted_hours))


def compute_term_stats(
    courses: Sequence[GradedCourse],
    default: Decimal | None = None,
) -> TermStats:
    attempted = sum((c.credit_hours for c in courses), Decimal(0))
    quality = sum((c.quality_points for c in courses), Decimal(0))
    return TermStats(
        attempted_hours=attempted,
        earned_hours=attempted,  # no failing grades are reachable
        quality_points=quality,
        gpa=compute_gpa(quality, attempted, default),
    )


def compute_cumulative(
    prior_hours: Decimal | int,
    prior_gpa: Decimal,
    term_stats: Sequence[TermStats],
    default: Decimal | None = None,
) -> CumulativeStats:
    """Carry a prior history forward through each generated term."""
    prior_hours = Decimal(prior_hours)
    prior_gpa = Decimal(prior_gpa)
    prior_points = prior_hours * prior_gpa
    attempted = prior_hours + sum((t.attempted_hours for t in term_stats), Decimal(0))
    quality = prior_points + sum((t.quality_points for t in term_stats), Decimal(0))
    return CumulativeStats(
        attempted_hours=attempted,
        earned_hours=attempted,
        quality_points=quality,
        gpa=compute_gpa(quality, attempted, default),
        prior_hours=prior_hours,
        prior_gpa=prior_gpa,
        prior_quality_points=prior_points,
    )


@dataclass(frozen=True)
class BillingConfig:
    base_tuition_min: int = 9400
    base_tuition_max: int = 9800

    def __post_init__(self):
        if self.base_tuition_min < 0:
            raise ValueError(f"base_tuition_min must be >= 0, got {self.base_tuition_min}")
        if self.base_tuition_max < self.base_tuition_min:
            raise ValueError(
                f"base_tuition_max ({self.base_tuition_max}) must be >= "
                f"base_tuition_min ({self.base_tuition_min})"
            )


def tier_for_college(college: College | str) -> FeeTier:
    try:
        key = college if isinstance(college, College) else College(college)
    except ValueError:
        raise UnknownCollegeError(f"no fee tier registered for college {college!r}") from None
    return COLLEGE_FEE_TIERS[key]


def compute_tuition(
    college: College | str,
    rng: RngProvider,
    config: BillingConfig = BillingConfig(),
) -> TuitionBreakdown:
    """Base tuition from the configured range, differential by fee tier, fixed fees."""
    tier = tier_for_college(college)
    base = Decimal(rng.integer(config.base_tuition_min, config.base_tuition_max))
    return TuitionBreakdown(
        base=base,
        differential=DIFFERENTIAL_TUITION[tier],
        fees=dict(FEE_SCHEDULE),
    )


def has_time_conflict(
    entry: ScheduleEntry,
    placed: Sequence[ScheduleEntry],
) -> bool:
    """Check if a meeting overlaps any already-placed meeting."""
    for existing in placed:
        if _days_overlap(entry.days, existing.days):
            if _times_overlap(
                entry.start_time, entry.end_time,
                existing.start_time, existing.end_time,
            ):
                return True
    return False


def _days_overlap(days_a: str, days_b: str) -> bool:
    return bool(set(days_a) & set(days_b))


def _times_overlap(start_a: str, end_a: str, start_b: str, end_b: str) -> bool:
    return start_a < end_b and start_b < end_a


def assign_meetings(
    rng: RngProvider,
    courses: Sequence[CourseRecord | GradedCourse],
) -> list[ScheduleEntry]:
    """Give each course a conflict-free meeting pattern, room and instructor."""
    placed: list[ScheduleEntry] = []
    candidates = [(days, slot) for days in DAYS_PATTERNS for slot in TIME_SLOTS]
    for course in courses:
        for days, (start, end) in rng.shuffled(candidates):
            entry = ScheduleEntry(
                code=course.code,
                name=course.name,
                credit_hours=course.credit_hours,
                days=days,
                start_time=start,
                end_time=end,
                room=f"{rng.choice(BUILDINGS)} {rng.integer(100, 499)}",
                instructor=rng.choice(INSTRUCTORS),
            )
            if not has_time_conflict(entry, placed):
                placed.append(entry)
                break
        else:
            raise RecordGenerationError(f"no free meeting slot for {course.code}")
    return placed


def term_names(statement: date) -> tuple[str, str]:
    """(current, next) term names for the term a statement falls in."""
    if statement.month <= 5:
        return f"Spring {statement.year}", f"Fall {statement.year}"
    return f"Fall {statement.year}", f"Spring {statement.year + 1}"


# ──────────────────────────────────────────────────────────────────────────────
# GENERATOR ENGINE
# ──────────────────────────────────────────────────────────────────────────────

class StudentRecordGenerator:
    """
    Builds one StudentRecord per generate() call.

    Deterministic for a fixed seed and reference date; a None seed draws
    from system entropy.
    """

    def __init__(
        self,
        seed: int | None = None,
        reference_date: date | None = None,
        billing: BillingConfig | None = None,
        university_name: str = UNIVERSITY_NAME,
        tracks: Sequence[Track] | None = None,
    ):
        if tracks is not None and not tracks:
            raise ValueError("tracks must not be empty")
        if not university_name.strip():
            raise ValueError("university_name must not be blank")

        self.seed = seed
        self.reference_date = reference_date or date.today()
        self.billing = billing or BillingConfig()
        self.university_name = university_name
        self.tracks = list(tracks) if tracks is not None else list(Track)

    # ── Public API ────────────────────────────────────────────────────────

    def generate(self) -> StudentRecord:
        """Build a complete record. Nothing is returned if any step fails."""
        rng = RngProvider(self.seed)

        first, last = rng.choice(FIRST_NAMES), rng.choice(LAST_NAMES)
        student_id = f"{rng.digits(6)}-{rng.digits(4)}"
        address = self._draw_address(rng)
        statement, due, issue = self._draw_dates(rng)

        track = _coerce_track(rng.choice(self.tracks))
        config = TRACKS[track]

        current = assign_grades(rng, select_courses(rng, track))
        upcoming = assign_grades(rng, select_courses(rng, track))
        current_stats = compute_term_stats(current)
        next_stats = compute_term_stats(upcoming)

        prior_hours = rng.integer(*PRIOR_HOURS_RANGE)
        prior_gpa = round_half_up(Decimal(str(rng.uniform(*PRIOR_GPA_RANGE))))
        cumulative = compute_cumulative(prior_hours, prior_gpa, [current_stats, next_stats])

        tuition = compute_tuition(config["college"], rng, self.billing)
        schedule = assign_meetings(rng, current)
        term, next_term = term_names(statement)

        record = StudentRecord(
            university_name=self.university_name,
            student_name=f"{last} {first}",
            student_id=student_id,
            address=address,
            term=term,
            next_term=next_term,
            track=track,
            major=track.value,
            program=config["program"],
            college=config["college"].value,
            statement_date=statement,
            due_date=due,
            issue_date=issue,
            current_courses=tuple(current),
            next_courses=tuple(upcoming),
            current_stats=current_stats,
            next_stats=next_stats,
            cumulative=cumulative,
            tuition=tuition,
            schedule=tuple(schedule),
            seed=self.seed,
        )
        logger.info(
            "Generated record %s (%s): term GPA %s, cumulative GPA %s, total %s",
            record.student_id, track.value, current_stats.gpa,
            cumulative.gpa, format_currency(tuition.total),
        )
        return record

    # ── Draws ─────────────────────────────────────────────────────────────

    def _draw_address(self, rng: RngProvider) -> str:
        number = rng.integer(100, 9999)
        street = f"{rng.choice(STREET_NAMES)} {rng.choice(STREET_SUFFIXES)}"
        city, state = rng.choice(CITIES)
        return f"{number} {street}, {city}, {state}"

    def _draw_dates(self, rng: RngProvider) -> tuple[date, date, date]:
        today = self.reference_date
        statement = rng.date_between(today - timedelta(days=STATEMENT_LOOKBACK_DAYS), today)
        due = statement + timedelta(days=rng.integer(*DUE_OFFSET_DAYS))
        issue = rng.date_between(today - timedelta(days=ISSUE_LOOKBACK_DAYS), today)
        return statement, due, issue

    # ── Export ────────────────────────────────────────────────────────────

    @staticmethod
    def to_json(record: StudentRecord, output_dir: str) -> str:
        """Write the display form of a record to ``record.json``."""
        out = Path(output_dir)
        out.mkdir(parents=True, exist_ok=True)
        path = out / "record.json"
        path.write_text(record.to_json())
        return str(path)


# ──────────────────────────────────────────────────────────────────────────────
# REPORT PRINTER
# ──────────────────────────────────────────────────────────────────────────────

def print_report(record: StudentRecord):
    """Print the record as a registrar summary to stdout."""
    print(f"\n{'=' * 72}")
    print(f"  {record.university_name.upper()} — STUDENT RECORD")
    print(f"{'=' * 72}")
    print(f"  Seed: {record.seed}")
    print(f"\n  Student:   {record.student_name} ({record.student_id})")
    print(f"  Address:   {record.address}")
    print(f"  Major:     {record.major} — {record.program}")
    print(f"  College:   {record.college}")
    print(f"  Statement: {format_date(record.statement_date)}   "
          f"Due: {format_date(record.due_date)}   "
          f"Issued: {format_date(record.issue_date)}")

    for label, courses, stats in (
        (record.term, record.current_courses, record.current_stats),
        (record.next_term, record.next_courses, record.next_stats),
    ):
        print(f"\n{'─' * 72}")
        print(f"  {label.upper()}")
        print(f"  {'Course':<11} {'Title':<36} {'Hrs':>5} {'Grd':>4} {'QP':>7}")
        print(f"  {'─' * 66}")
        for c in courses:
            print(f"  {c.code:<11} {c.name:<36} {c.credit_hours:>5.2f} "
                  f"{c.grade.value:>4} {c.quality_points:>7.2f}")
        print(f"  {'Term':<48} {stats.attempted_hours:>5.2f} {'':>4} "
              f"{stats.quality_points:>7.2f}   GPA {stats.gpa:.2f}")

    cum = record.cumulative
    print(f"\n  Cumulative: {cum.attempted_hours:.2f} hrs, "
          f"{cum.quality_points:.2f} QP, GPA {cum.gpa:.2f} "
          f"(prior {cum.prior_hours} hrs @ {cum.prior_gpa:.2f})")

    t = record.tuition
    print(f"\n{'─' * 72}")
    print("  CHARGES")
    print(f"  {'─' * 60}")
    print(f"  {'Tuition':<40} {format_currency(t.base):>14}")
    print(f"  {'Differential Tuition':<40} {format_currency(t.differential):>14}")
    for name, amount in t.fees.items():
        print(f"  {FEE_LABELS.get(name, name):<40} {format_currency(amount):>14}")
    print(f"  {'Total Charges':<40} {format_currency(t.total):>14}")
    print(f"\n{'=' * 72}\n")


# ──────────────────────────────────────────────────────────────────────────────
# CLI
# ──────────────────────────────────────────────────────────────────────────────

def main():
    parser = argparse.ArgumentParser(
        description="Synthetic Student Record Generator",
    )
    parser.add_argument(
        "--seed", type=int, default=os.environ.get("STUDENT_DOCS_SEED") or None,
        help="Random seed (or set STUDENT_DOCS_SEED); omit for a fresh record",
    )
    parser.add_argument(
        "--track", choices=[t.value for t in Track], default=None,
        help="Restrict generation to one track",
    )
    parser.add_argument(
        "--output", choices=["report", "json", "all"],
        default="report", help="Output format",
    )
    parser.add_argument(
        "--output-dir",
        default=os.environ.get("STUDENT_DOCS_OUTPUT_DIR", "./output"),
        help="Output directory (or set STUDENT_DOCS_OUTPUT_DIR)",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )

    gen = StudentRecordGenerator(
        seed=args.seed,
        tracks=[Track(args.track)] if args.track else None,
    )
    record = gen.generate()

    if args.output in ("report", "all"):
        print_report(record)

    if args.output in ("json", "all"):
        path = gen.to_json(record, args.output_dir)
        print(f"  JSON -> {path}")


if __name__ == "__main__":
    main()
