import logging
from datetime import date, datetime, timezone

import pytest

from ehr_core.audit.constants import MODIFIED_MARKER, REDACTED
from ehr_core.audit.exceptions import MaskingClassificationError
from ehr_core.audit.masking import CLASSIFY_CACHE_SIZE, FieldCategory, MaskingPolicy, classify_tokens, mask, tokenize


@pytest.fixture
def policy():
    return MaskingPolicy()


@pytest.mark.parametrize(
    "field, raw, expected",
    [
        ("ssn", "123-45-6789", "*****6789"),
        ("social_security_number", "123456789", "*****6789"),
        ("mrn", "MRN-00012345", "*****2345"),
        ("mrn", "MRN-1", "*********"),
        ("email", "John.Smith@Example.COM", "J***@example.com"),
        ("contact_email", "a@x.com", "a***@x.com"),
        ("phone", "(555) 123-4567", "***-***-4567"),
        ("mobile_phone", "+1 555 987 6543", "***-***-6543"),
        ("first_name", "Jane", "J***"),
        ("lastName", "Doe", "D***"),
        ("date_of_birth", date(1980, 5, 17), "1980-**-**"),
        ("dob", "1975-12-01", "1975-**-**"),
        ("notes", "Allergic to penicillin", MODIFIED_MARKER),
        ("chief_complaint", "chest pain", MODIFIED_MARKER),
        ("address", "1 Main St", MODIFIED_MARKER),
        ("password", "hunter2", REDACTED),
        ("api_key", "abc", REDACTED),
        ("status", "ACTIVE", "ACTIVE"),
        ("is_active", True, True),
        ("visit_count", 3, 3),
    ],
)
def test_mask_rules(policy, field, raw, expected):
    assert policy.mask(field, raw) == expected


def test_structural_values_are_json_safe(policy):
    ts = datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
    assert policy.mask("started_at", ts) == "2024-01-02T03:04:05+00:00"
    assert policy.mask("patient_id", "8c1b") == "8c1b"


def test_malformed_email_and_short_phone_are_fully_redacted(policy):
    assert policy.mask("email", "not-an-email") == REDACTED
    assert policy.mask("email", "a@b@c.com") == REDACTED
    assert policy.mask("phone", "12345") == REDACTED


def test_unknown_field_fails_closed(policy):
    assert policy.category_for("favourite_colour") is FieldCategory.UNCLASSIFIED
    assert policy.mask("favourite_colour", "blue") == REDACTED


def test_none_stays_none(policy):
    assert policy.mask("ssn", None) is None
    assert policy.mask("favourite_colour", None) is None


def test_ambiguous_field_is_redacted_and_logged_without_value(policy, caplog):
    with pytest.raises(MaskingClassificationError):
        policy.classify("phone_or_email")

    with caplog.at_level(logging.WARNING, logger="ehr_core.audit.masking"):
        out = policy.mask("phone_or_email", "jane@example.com")

    assert out == REDACTED
    assert "phone_or_email" in caplog.text
    assert "jane@example.com" not in caplog.text


def test_sensitive_match_beats_structural_token(policy):
    # "id" is structural, "member id" is an identifier
    assert policy.category_for("member_id") is FieldCategory.DIRECT_IDENTIFIER
    assert policy.category_for("patientSSN") is FieldCategory.DIRECT_IDENTIFIER


def test_masking_is_deterministic(policy):
    values = [policy.mask("ssn", "123-45-6789") for _ in range(3)]
    assert values == ["*****6789"] * 3
    assert MaskingPolicy().mask("ssn", "123-45-6789") == values[0]


def test_extra_rules_extend_exact_names():
    p = MaskingPolicy(extra_rules={"nhs_number": "direct_identifier", "favourite_colour": "structural"})
    assert p.mask("nhs_number", "943 476 5919") == "*****5919"
    assert p.mask("favourite_colour", "blue") == "blue"


def test_module_mask_uses_settings_rules(settings):
    settings.AUDIT_MASKING_FIELD_RULES = {"ward": "structural"}
    assert mask("ward", "B2") == "B2"
    assert mask("bed", "12") == REDACTED


def test_tokenize_splits_camel_and_separators():
    assert tokenize("patientSSN_last4") == ("patient", "ssn", "last4")
    assert tokenize("Date-Of-Birth") == ("date", "of", "birth")


@pytest.mark.parametrize(
    "field, raw",
    [
        ("lives_at", "123 Main St, Denver"),
        ("on_medication", "methadone 80mg"),
        ("seen_at_clinic", "Planned Parenthood Downtown"),
        ("is_hiv_positive", True),
        ("glucose_level", 312),
        ("cd4_count", 180),
        ("hiv_status", "POSITIVE"),
        ("pregnancy_date", "2024-02-01"),
    ],
)
def test_structural_looking_clinical_fields_fail_closed(policy, field, raw):
    assert policy.category_for(field) is FieldCategory.UNCLASSIFIED
    assert policy.mask(field, raw) == REDACTED


@pytest.mark.parametrize(
    "field",
    ["started_at", "ended_at", "patient_id", "encounter_type", "visit_count", "is_active", "has_encounters", "count"],
)
def test_fully_structural_names_pass_through(policy, field):
    assert policy.category_for(field) is FieldCategory.STRUCTURAL


def test_classification_cache_is_bounded(policy):
    for i in range(CLASSIFY_CACHE_SIZE + 50):
        policy.mask(f"legacy_key_{i}", "x")

    info = classify_tokens.cache_info()
    assert info.maxsize == CLASSIFY_CACHE_SIZE
    assert info.currsize <= CLASSIFY_CACHE_SIZE
