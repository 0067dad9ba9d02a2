import itertools

import pytest

from ehr_core.audit.exceptions import QueryConstructionError
from ehr_core.audit.models import AuditEvent
from ehr_core.audit.query import AuditFilter, AuditQueryService, Pagination, build_predicate
from ehr_core.audit.store import AuditRecordStore
from ehr_core.audit.tests.helpers import BASE_TIME, append, at

pytestmark = pytest.mark.django_db


@pytest.fixture
def store(signer):
    return AuditRecordStore(signer)


@pytest.fixture
def query(store):
    return AuditQueryService(store)


@pytest.fixture
def seeded(store):
    """
    p-1: update by 42 @0, read by 42 @1, read by 7 @2 (failed)
    p-2: create by 7 @3
    e-1 (encounter of p-1): update by 42 @4
    """
    return {
        "p1_update": append(store, occurred_at=at(0)),
        "p1_read": append(
            store, action="read", occurred_at=at(1), changed_fields=(), old_values=None, new_values=None
        ),
        "p1_failed_read": append(
            store,
            action="read",
            actor_user_id="7",
            occurred_at=at(2),
            changed_fields=(),
            old_values=None,
            new_values=None,
            success=False,
            error_message="Patient not found",
        ),
        "p2_create": append(
            store, action="create", actor_user_id="7", subject_id="p-2", linked_subject_id="p-2",
            occurred_at=at(3), old_values=None,
        ),
        "e1_update": append(
            store, subject_type="encounter", subject_id="e-1", linked_subject_id="p-1", occurred_at=at(4)
        ),
    }


def _ids(result):
    return [r.record.id for r in result.records]


def test_search_returns_newest_first(query, seeded):
    result = query.search(AuditFilter(), Pagination(limit=50))

    assert result.total_count == 5
    assert _ids(result) == [
        seeded["e1_update"],
        seeded["p2_create"],
        seeded["p1_failed_read"],
        seeded["p1_read"],
        seeded["p1_update"],
    ]
    assert all(r.integrity_verified for r in result.records)


def test_ties_on_occurred_at_break_by_id_descending(store, query):
    a = append(store, occurred_at=at(10))
    b = append(store, occurred_at=at(10))

    result = query.search(AuditFilter(occurred_from=at(10)), Pagination(limit=10))
    assert _ids(result) == sorted([a, b], reverse=True)


@pytest.mark.parametrize(
    "audit_filter",
    [
        AuditFilter(subject_type="patient", subject_id="p-1"),
        AuditFilter(actor_user_id="7"),
        AuditFilter(action="read"),
        AuditFilter(success=False),
        AuditFilter(linked_subject_id="p-1"),
        AuditFilter(involving_subject_id="p-1"),
        AuditFilter(occurred_from=at(1), occurred_to=at(3)),
    ],
)
def test_results_are_subset_matching_filter(query, seeded, audit_filter):
    result = query.search(audit_filter, Pagination(limit=50))
    everything = AuditEvent.objects.filter(build_predicate(audit_filter)).count()

    assert result.total_count == everything == len(result.records)
    for loaded in result.records:
        r = loaded.record
        if audit_filter.subject_id:
            assert r.subject_id == audit_filter.subject_id
        if audit_filter.actor_user_id:
            assert r.actor_user_id == audit_filter.actor_user_id
        if audit_filter.action:
            assert r.action == audit_filter.action
        if audit_filter.success is not None:
            assert r.success is audit_filter.success
        if audit_filter.linked_subject_id:
            assert r.linked_subject_id == audit_filter.linked_subject_id
        if audit_filter.involving_subject_id:
            assert audit_filter.involving_subject_id in (r.subject_id, r.linked_subject_id)
        if audit_filter.occurred_from:
            assert audit_filter.occurred_from <= r.occurred_at < audit_filter.occurred_to


FILTER_PARTS = {
    "patient_p1": {"subject_type": "patient", "subject_id": "p-1"},
    "actor_7": {"actor_user_id": "7"},
    "reads": {"action": "read"},
    "failures": {"success": False},
    "linked_p1": {"linked_subject_id": "p-1"},
    "involving_p1": {"involving_subject_id": "p-1"},
    "minutes_1_to_4": {"occurred_from": at(1), "occurred_to": at(4)},
}


@pytest.mark.parametrize("left, right", list(itertools.combinations(FILTER_PARTS, 2)))
def test_combined_filters_narrow_each_part(query, seeded, left, right):
    left_ids = set(_ids(query.search(AuditFilter(**FILTER_PARTS[left]), Pagination(limit=50))))
    right_ids = set(_ids(query.search(AuditFilter(**FILTER_PARTS[right]), Pagination(limit=50))))

    combined = query.search(AuditFilter(**FILTER_PARTS[left], **FILTER_PARTS[right]), Pagination(limit=50))
    combined_ids = set(_ids(combined))

    assert combined_ids <= left_ids
    assert combined_ids <= right_ids
    assert combined_ids == left_ids & right_ids
    assert combined.total_count == len(combined_ids)


def test_time_range_is_half_open(query, seeded):
    result = query.search(AuditFilter(occurred_from=at(1), occurred_to=at(3)), Pagination(limit=50))
    assert set(_ids(result)) == {seeded["p1_read"], seeded["p1_failed_read"]}


def test_involving_subject_spans_linked_records(query, seeded):
    result = query.search(AuditFilter(involving_subject_id="p-1"), Pagination(limit=50))
    assert seeded["e1_update"] in _ids(result)
    assert seeded["p2_create"] not in _ids(result)


def test_pagination_total_is_independent_of_page(query, seeded):
    first = query.search(AuditFilter(), Pagination.page(1, 2))
    second = query.search(AuditFilter(), Pagination.page(2, 2))
    third = query.search(AuditFilter(), Pagination.page(3, 2))

    assert first.total_count == second.total_count == third.total_count == 5
    assert [len(p.records) for p in (first, second, third)] == [2, 2, 1]
    assert not set(_ids(first)) & set(_ids(second))


def test_count_by_action_is_zero_filled_and_consistent(query, seeded):
    counts = query.count_by_action(AuditFilter(subject_type="patient"))
    assert counts == {"create": 1, "read": 2, "update": 1, "delete": 0}

    total = query.search(AuditFilter(subject_type="patient"), Pagination(limit=1)).total_count
    assert sum(counts.values()) == total


def test_summary(query, seeded):
    s = query.summary(AuditFilter())
    assert s["total"] == 5
    assert s["failures"] == 1
    assert s["by_subject_type"] == {"patient": 4, "encounter": 1}
    assert s["top_actors"][0] == {"actor_user_id": "42", "count": 3}


def test_tampered_row_flagged_without_hiding_others(query, seeded):
    AuditEvent._base_manager.filter(pk=seeded["p1_read"]).update(actor_user_id="666")

    result = query.search(AuditFilter(), Pagination(limit=50))
    flags = {r.record.id: r.integrity_verified for r in result.records}
    assert flags[seeded["p1_read"]] is False
    assert sum(flags.values()) == 4

    report = query.verify(AuditFilter())
    assert report.checked == 5
    assert report.violations == [str(seeded["p1_read"])]
    assert not report.ok


@pytest.mark.parametrize(
    "audit_filter",
    [
        AuditFilter(occurred_from=at(5), occurred_to=at(1)),
        AuditFilter(occurred_from=BASE_TIME.replace(tzinfo=None)),
        AuditFilter(action="merge"),
    ],
)
def test_malformed_filters_rejected(query, audit_filter):
    with pytest.raises(QueryConstructionError):
        query.search(audit_filter, Pagination())
    with pytest.raises(QueryConstructionError):
        query.count_by_action(audit_filter)


@pytest.mark.parametrize(
    "kwargs",
    [{"offset": -1}, {"limit": 0}, {"limit": 201}],
)
def test_bad_pagination_rejected(kwargs):
    with pytest.raises(QueryConstructionError):
        Pagination(**kwargs)


def test_page_helper():
    assert Pagination.page(3, 20) == Pagination(offset=40, limit=20)
    with pytest.raises(QueryConstructionError):
        Pagination.page(0, 20)


def test_max_page_size_follows_settings(settings):
    settings.AUDIT_QUERY_MAX_PAGE_SIZE = 10
    with pytest.raises(QueryConstructionError):
        Pagination(limit=11)


def test_empty_time_range_is_valid_and_matches_nothing(query, seeded):
    result = query.search(AuditFilter(occurred_from=at(1), occurred_to=at(1)), Pagination(limit=50))
    assert result.total_count == 0
    assert result.records == []
