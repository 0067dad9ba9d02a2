# ehr_core/audit/masking.py
"""
PHI masking applied to every value before it reaches an audit record.

Classification is by field name only. Every field maps to a rule; anything
unrecognised or ambiguous is fully redacted (fail closed). Masking is a pure
function of (field_name, value): no randomness, no clock, no locale.
"""
from __future__ import annotations

import enum
import functools
import logging
import math
import re
import uuid
from datetime import date, datetime, time
from decimal import Decimal
from typing import Any, Iterable, Mapping

from django.conf import settings

from ehr_core.audit.constants import MASK_CHAR, MODIFIED_MARKER, REDACTED
from ehr_core.audit.exceptions import MaskingClassificationError

logger = logging.getLogger(__name__)

VISIBLE_SUFFIX = 4
IDENTIFIER_MASK_WIDTH = 5
MIN_IDENTIFIER_LENGTH = 2 * VISIBLE_SUFFIX
MIN_PHONE_DIGITS = 7


class FieldCategory(str, enum.Enum):
    DIRECT_IDENTIFIER = "direct_identifier"
    EMAIL = "email"
    PHONE = "phone"
    NAME = "name"
    DATE_OF_BIRTH = "date_of_birth"
    NARRATIVE = "narrative"
    SECRET = "secret"
    STRUCTURAL = "structural"
    UNCLASSIFIED = "unclassified"


# Exact field names win over token matching.
EXACT_RULES: dict[str, FieldCategory] = {
    "id": FieldCategory.STRUCTURAL,
    "pk": FieldCategory.STRUCTURAL,
    "mrn": FieldCategory.DIRECT_IDENTIFIER,
    "ssn": FieldCategory.DIRECT_IDENTIFIER,
    "email": FieldCategory.EMAIL,
    "phone": FieldCategory.PHONE,
    "dob": FieldCategory.DATE_OF_BIRTH,
    "gender": FieldCategory.STRUCTURAL,
    "sex": FieldCategory.STRUCTURAL,
    "status": FieldCategory.STRUCTURAL,
    "version": FieldCategory.STRUCTURAL,
}

# Sensitive token sequences, matched contiguously against the tokenised field name.
# Nothing here passes a value through; structural names are recognised separately.
TOKEN_RULES: tuple[tuple[tuple[str, ...], FieldCategory], ...] = (
    (("ssn",), FieldCategory.DIRECT_IDENTIFIER),
    (("social", "security"), FieldCategory.DIRECT_IDENTIFIER),
    (("card", "number"), FieldCategory.DIRECT_IDENTIFIER),
    (("credit", "card"), FieldCategory.DIRECT_IDENTIFIER),
    (("mrn",), FieldCategory.DIRECT_IDENTIFIER),
    (("medical", "record", "number"), FieldCategory.DIRECT_IDENTIFIER),
    (("member", "id"), FieldCategory.DIRECT_IDENTIFIER),
    (("insurance", "id"), FieldCategory.DIRECT_IDENTIFIER),
    (("policy", "number"), FieldCategory.DIRECT_IDENTIFIER),
    (("bank", "account"), FieldCategory.DIRECT_IDENTIFIER),
    (("account", "number"), FieldCategory.DIRECT_IDENTIFIER),
    (("routing", "number"), FieldCategory.DIRECT_IDENTIFIER),
    (("license", "number"), FieldCategory.DIRECT_IDENTIFIER),
    (("passport",), FieldCategory.DIRECT_IDENTIFIER),
    (("email",), FieldCategory.EMAIL),
    (("phone",), FieldCategory.PHONE),
    (("mobile",), FieldCategory.PHONE),
    (("telephone",), FieldCategory.PHONE),
    (("fax",), FieldCategory.PHONE),
    (("first", "name"), FieldCategory.NAME),
    (("last", "name"), FieldCategory.NAME),
    (("middle", "name"), FieldCategory.NAME),
    (("full", "name"), FieldCategory.NAME),
    (("given", "name"), FieldCategory.NAME),
    (("family", "name"), FieldCategory.NAME),
    (("preferred", "name"), FieldCategory.NAME),
    (("maiden", "name"), FieldCategory.NAME),
    (("contact", "name"), FieldCategory.NAME),
    (("surname",), FieldCategory.NAME),
    (("dob",), FieldCategory.DATE_OF_BIRTH),
    (("date", "of", "birth"), FieldCategory.DATE_OF_BIRTH),
    (("birth", "date"), FieldCategory.DATE_OF_BIRTH),
    (("birthdate",), FieldCategory.DATE_OF_BIRTH),
    (("note",), FieldCategory.NARRATIVE),
    (("notes",), FieldCategory.NARRATIVE),
    (("narrative",), FieldCategory.NARRATIVE),
    (("complaint",), FieldCategory.NARRATIVE),
    (("assessment",), FieldCategory.NARRATIVE),
    (("plan",), FieldCategory.NARRATIVE),
    (("history",), FieldCategory.NARRATIVE),
    (("comment",), FieldCategory.NARRATIVE),
    (("comments",), FieldCategory.NARRATIVE),
    (("description",), FieldCategory.NARRATIVE),
    (("reason",), FieldCategory.NARRATIVE),
    (("diagnosis",), FieldCategory.NARRATIVE),
    (("summary",), FieldCategory.NARRATIVE),
    (("instructions",), FieldCategory.NARRATIVE),
    (("address",), FieldCategory.NARRATIVE),
    (("street",), FieldCategory.NARRATIVE),
    (("zip",), FieldCategory.NARRATIVE),
    (("postal",), FieldCategory.NARRATIVE),
    (("password",), FieldCategory.SECRET),
    (("token",), FieldCategory.SECRET),
    (("secret",), FieldCategory.SECRET),
    (("api", "key"), FieldCategory.SECRET),
    (("pin",), FieldCategory.SECRET),
    (("cvv",), FieldCategory.SECRET),
    (("otp",), FieldCategory.SECRET),
)

# A name is structural only when it is built entirely from known parts:
#   <qualifier>_..._<suffix>   e.g. started_at, patient_id, visit_count, encounter_type
#   is_<qualifier>... / has_<qualifier>...   e.g. is_active, has_encounters
# Any unknown token (lives_at, cd4_count, is_hiv_positive) leaves the field unclassified.
STRUCTURAL_SUFFIXES = frozenset({
    "id", "uuid", "pk", "at", "on", "date", "count", "total", "status", "type", "kind", "version", "priority",
})
STRUCTURAL_FLAG_PREFIXES = frozenset({"is", "has"})
STRUCTURAL_QUALIFIERS = frozenset({
    "patient", "encounter", "encounters", "visit", "visits", "record", "records", "user", "actor", "subject",
    "linked", "parent", "external", "request", "session", "event", "page", "retry", "attempt",
    "created", "updated", "modified", "deleted", "started", "ended", "closed", "opened",
    "scheduled", "cancelled", "admitted", "discharged", "admission", "discharge", "effective",
    "active", "enabled", "archived", "verified", "primary", "last", "next",
})

CLASSIFY_CACHE_SIZE = 1024

_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])")
_TOKEN_SPLIT = re.compile(r"[^a-z0-9]+")


def tokenize(field_name: str) -> tuple[str, ...]:
    """'patientSSN_last4' -> ('patient', 'ssn', 'last4')"""
    spaced = _CAMEL_BOUNDARY.sub("_", str(field_name))
    return tuple(t for t in _TOKEN_SPLIT.split(spaced.lower()) if t)


def _contains(tokens: tuple[str, ...], needle: tuple[str, ...]) -> bool:
    n = len(needle)
    return any(tokens[i:i + n] == needle for i in range(len(tokens) - n + 1))


def _is_structural_name(tokens: tuple[str, ...]) -> bool:
    if not tokens:
        return False
    if len(tokens) > 1 and tokens[0] in STRUCTURAL_FLAG_PREFIXES:
        return all(t in STRUCTURAL_QUALIFIERS for t in tokens[1:])
    if tokens[-1] in STRUCTURAL_SUFFIXES:
        return all(t in STRUCTURAL_QUALIFIERS for t in tokens[:-1])
    return False


@functools.lru_cache(maxsize=CLASSIFY_CACHE_SIZE)
def classify_tokens(field_name: str) -> FieldCategory:
    """
    Token-based classification, shared by every policy.
    Raises MaskingClassificationError when two different sensitive rules match.
    """
    tokens = tokenize(field_name)
    sensitive = {category for needle, category in TOKEN_RULES if _contains(tokens, needle)}
    if len(sensitive) > 1:
        raise MaskingClassificationError(field_name, sensitive)
    if sensitive:
        return sensitive.pop()
    if _is_structural_name(tokens):
        return FieldCategory.STRUCTURAL
    return FieldCategory.UNCLASSIFIED


def to_json_safe(value: Any) -> Any:
    """
    Normalise a pass-through value to a JSON-native type.
    Dates become ISO strings, UUID/Decimal become strings, containers recurse.
    """
    if value is None or isinstance(value, (bool, int, str)):
        return value
    if isinstance(value, float):
        return value if math.isfinite(value) else str(value)
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    if isinstance(value, (uuid.UUID, Decimal)):
        return str(value)
    if isinstance(value, enum.Enum):
        return to_json_safe(value.value)
    if isinstance(value, Mapping):
        return {str(k): to_json_safe(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_json_safe(v) for v in value]
    return str(value)


def _mask_identifier(value: Any) -> str:
    visible = [c for c in str(value) if c.isalnum()]
    if len(visible) < MIN_IDENTIFIER_LENGTH:
        return MASK_CHAR * (IDENTIFIER_MASK_WIDTH + VISIBLE_SUFFIX)
    return MASK_CHAR * IDENTIFIER_MASK_WIDTH + "".join(visible[-VISIBLE_SUFFIX:])


def _mask_email(value: Any) -> str:
    text = str(value).strip()
    if text.count("@") != 1:
        return REDACTED
    local, domain = text.split("@")
    if not local or "." not in domain:
        return REDACTED
    return f"{local[0]}***@{domain.lower()}"


def _mask_phone(value: Any) -> str:
    digits = [c for c in str(value) if c.isdigit()]
    if len(digits) < MIN_PHONE_DIGITS:
        return REDACTED
    return "***-***-" + "".join(digits[-VISIBLE_SUFFIX:])


def _mask_name(value: Any) -> str:
    text = str(value).strip()
    if not text:
        return ""
    return f"{text[0]}***"


def _mask_date_of_birth(value: Any) -> str:
    if isinstance(value, (date, datetime)):
        return f"{value.year:04d}-**-**"
    text = str(value).strip()
    if len(text) >= 4 and text[:4].isdigit():
        return f"{text[:4]}-**-**"
    return REDACTED


class MaskingPolicy:
    """
    Deterministic field-name based masking.

    extra_rules: deployment-level exact-name overrides (settings.AUDIT_MASKING_FIELD_RULES).
    """

    def __init__(self, extra_rules: Mapping[str, Any] | None = None) -> None:
        exact = dict(EXACT_RULES)
        for name, category in (extra_rules or {}).items():
            exact[str(name).lower()] = FieldCategory(category)
        self._exact = exact

    @classmethod
    def from_settings(cls) -> "MaskingPolicy":
        return cls(extra_rules=getattr(settings, "AUDIT_MASKING_FIELD_RULES", None))

    def classify(self, field_name: str) -> FieldCategory:
        """
        Exact names first, then tokens. A sensitive token always wins; a name only
        passes through when it is structural in full.
        """
        key = str(field_name).lower()
        if key in self._exact:
            return self._exact[key]
        return classify_tokens(str(field_name))

    def category_for(self, field_name: str) -> FieldCategory:
        try:
            return self.classify(field_name)
        except MaskingClassificationError as exc:
            logger.warning("audit.masking.ambiguous field=%s categories=%s", field_name, ",".join(exc.categories))
            return FieldCategory.UNCLASSIFIED

    def mask(self, field_name: str, raw_value: Any) -> Any:
        if raw_value is None:
            return None

        category = self.category_for(field_name)

        if category is FieldCategory.STRUCTURAL:
            return to_json_safe(raw_value)
        if category is FieldCategory.NARRATIVE:
            return MODIFIED_MARKER
        if category is FieldCategory.DIRECT_IDENTIFIER:
            return _mask_identifier(raw_value)
        if category is FieldCategory.EMAIL:
            return _mask_email(raw_value)
        if category is FieldCategory.PHONE:
            return _mask_phone(raw_value)
        if category is FieldCategory.NAME:
            return _mask_name(raw_value)
        if category is FieldCategory.DATE_OF_BIRTH:
            return _mask_date_of_birth(raw_value)

        # SECRET and UNCLASSIFIED
        return REDACTED

    def mask_fields(self, values: Mapping[str, Any], fields: Iterable[str]) -> dict[str, Any]:
        return {name: self.mask(name, values[name]) for name in fields}


def mask(field_name: str, raw_value: Any) -> Any:
    """Module-level convenience using the configured policy."""
    return MaskingPolicy.from_settings().mask(field_name, raw_value)
