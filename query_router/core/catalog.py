"""Catalog: canonical field values and natural-language alias tables.

Static lookup data shared by the classifier, the filter extractor and the
context builder.  Everything here is immutable module state; nothing in this
module performs I/O.
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import dataclass
from enum import StrEnum


class Severity(StrEnum):
    """Record severity levels, highest first."""

    CRITICAL = "Critical"
    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"


class Status(StrEnum):
    """Record workflow status."""

    OPEN = "Open"
    IN_PROGRESS = "In Progress"
    CLOSED = "Closed"
    DEFERRED = "Deferred"


class Category(StrEnum):
    """Project category a record belongs to."""

    HOTEL = "Hotel"
    APARTMENT = "Apartment"
    HOSPITAL = "Hospital"
    CLINIC = "Clinic"
    SCHOOL = "School"
    UNIVERSITY = "University"
    MALL = "Mall"
    OFFICE_BUILDING = "Office Building"
    LANDED_HOUSE = "Landed House"
    INSURANCE = "Insurance"
    MIXED_USE = "Mixed-Use Development"


YEAR_MIN = 2000
YEAR_MAX = 2099

# ---------------------------------------------------------------------------
# Alias tables (lower-case term -> canonical value)
# ---------------------------------------------------------------------------

CATEGORY_ALIASES: dict[str, Category] = {
    "hotel": Category.HOTEL,
    "hotels": Category.HOTEL,
    "apartment": Category.APARTMENT,
    "apartments": Category.APARTMENT,
    "flat": Category.APARTMENT,
    "flats": Category.APARTMENT,
    "hospital": Category.HOSPITAL,
    "hospitals": Category.HOSPITAL,
    "clinic": Category.CLINIC,
    "clinics": Category.CLINIC,
    "school": Category.SCHOOL,
    "schools": Category.SCHOOL,
    "university": Category.UNIVERSITY,
    "universities": Category.UNIVERSITY,
    "college": Category.UNIVERSITY,
    "mall": Category.MALL,
    "malls": Category.MALL,
    "shopping center": Category.MALL,
    "shopping centre": Category.MALL,
    "office": Category.OFFICE_BUILDING,
    "offices": Category.OFFICE_BUILDING,
    "office building": Category.OFFICE_BUILDING,
    "landed house": Category.LANDED_HOUSE,
    "house": Category.LANDED_HOUSE,
    "houses": Category.LANDED_HOUSE,
    "insurance": Category.INSURANCE,
    "mixed-use": Category.MIXED_USE,
    "mixed use": Category.MIXED_USE,
    "mixed-use development": Category.MIXED_USE,
}

SEVERITY_ALIASES: dict[str, Severity] = {
    "critical": Severity.CRITICAL,
    "urgent": Severity.CRITICAL,
    "severe": Severity.CRITICAL,
    "high": Severity.HIGH,
    "important": Severity.HIGH,
    "medium": Severity.MEDIUM,
    "moderate": Severity.MEDIUM,
    "low": Severity.LOW,
    "minor": Severity.LOW,
}

STATUS_ALIASES: dict[str, Status] = {
    "open": Status.OPEN,
    "pending": Status.OPEN,
    "new": Status.OPEN,
    "in progress": Status.IN_PROGRESS,
    "in-progress": Status.IN_PROGRESS,
    "ongoing": Status.IN_PROGRESS,
    "closed": Status.CLOSED,
    "resolved": Status.CLOSED,
    "done": Status.CLOSED,
    "completed": Status.CLOSED,
    "fixed": Status.CLOSED,
    "deferred": Status.DEFERRED,
    "postponed": Status.DEFERRED,
    "delayed": Status.DEFERRED,
}

# Acronyms are matched case-sensitively ("it" is a pronoun, "IT" a department).
DEPARTMENT_ACRONYMS: tuple[str, ...] = ("IT", "HR", "QA", "QC", "R&D")

DEPARTMENT_NAMES: tuple[str, ...] = (
    "Finance",
    "Sales",
    "Procurement",
    "Legal",
    "Marketing",
    "Operations",
    "Accounting",
    "Administration",
    "Admin",
    "Engineering",
    "Research",
    "Customer Service",
    "Logistics",
    "Supply Chain",
    "Quality",
    "Production",
    "Manufacturing",
    "Warehouse",
    "Security",
    "Facilities",
    "Maintenance",
    "Compliance",
    "Treasury",
    "Tax",
    "Payroll",
    "Training",
    "Recruitment",
    "Communications",
)

RELATIVE_YEARS: dict[str, int] = {
    "this year": 0,
    "current year": 0,
    "last year": -1,
    "previous year": -1,
    "next year": 1,
}


def alias_pattern(aliases: Iterable[str]) -> re.Pattern[str]:
    """Compile a whole-term, case-insensitive alternation, longest alias first.

    Longest-first ordering makes ``"in progress"`` win over ``"progress"`` and
    ``"office building"`` over ``"office"``.
    """
    terms = sorted(aliases, key=len, reverse=True)
    body = "|".join(re.escape(term) for term in terms)
    return re.compile(rf"(?<!\w)(?:{body})(?!\w)", re.IGNORECASE)


CATEGORY_PATTERN = alias_pattern(CATEGORY_ALIASES)
SEVERITY_PATTERN = alias_pattern(SEVERITY_ALIASES)
STATUS_PATTERN = alias_pattern(STATUS_ALIASES)
DEPARTMENT_NAME_PATTERN = alias_pattern(DEPARTMENT_NAMES)
DEPARTMENT_ACRONYM_PATTERN = re.compile(
    r"(?<![\w&])(?:" + "|".join(re.escape(a) for a in DEPARTMENT_ACRONYMS) + r")(?![\w&])"
)
YEAR_PATTERN = re.compile(r"\b(20\d{2})\b")
RELATIVE_YEAR_PATTERN = alias_pattern(tuple(RELATIVE_YEARS))


def canonical_department(term: str) -> str:
    """Return the catalog spelling of a known department name or acronym."""
    for name in DEPARTMENT_ACRONYMS + DEPARTMENT_NAMES:
        if name.lower() == term.lower():
            return name
    return term


# ---------------------------------------------------------------------------
# Field descriptors (structured-extraction schema documentation)
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class FieldDescriptor:
    """Describes one filterable record field for the extraction prompt."""

    name: str
    type: str
    description: str
    allowed: tuple[str, ...] = ()

    def render(self) -> str:
        line = f"- {self.name} ({self.type}): {self.description}"
        if self.allowed:
            line += f" Allowed values: {', '.join(self.allowed)}."
        return line


FIELD_DESCRIPTORS: tuple[FieldDescriptor, ...] = (
    FieldDescriptor(
        "year",
        "integer",
        f"Four-digit year the record was raised ({YEAR_MIN}-{YEAR_MAX}).",
    ),
    FieldDescriptor(
        "category",
        "string",
        "Project category the user is asking about.",
        tuple(c.value for c in Category),
    ),
    FieldDescriptor(
        "severity_levels",
        "list of strings",
        "Severity levels mentioned or implied.",
        tuple(s.value for s in Severity),
    ),
    FieldDescriptor(
        "status_levels",
        "list of strings",
        "Workflow statuses mentioned or implied.",
        tuple(s.value for s in Status),
    ),
    FieldDescriptor("department", "string", "Owning department, if named."),
    FieldDescriptor(
        "keywords",
        "list of strings",
        "Subject keywords to search record text for. Exclude filter words.",
    ),
    FieldDescriptor(
        "date_start", "ISO date", "Start of an explicit date range, if any."
    ),
    FieldDescriptor("date_end", "ISO date", "End of an explicit date range, if any."),
)


def describe_fields() -> str:
    """Render all field descriptors as a bullet list for prompts."""
    return "\n".join(descriptor.render() for descriptor in FIELD_DESCRIPTORS)
