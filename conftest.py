# conftest.py
import pytest
from django.contrib.auth import get_user_model
from django.contrib.auth.models import Group
from rest_framework.test import APIClient

from ehr_core.audit.context import ActorContext
from ehr_core.audit.services import build_audit_service
from ehr_core.audit.signing import IntegritySigner
from ehr_core.common.permissions import ROLE_PRECEDENCE
from ehr_core.patients.models import Patient


def make_user(username: str, role: str | None = None, **extra):
    for name in ROLE_PRECEDENCE:
        Group.objects.get_or_create(name=name)

    User = get_user_model()
    user = User.objects.create_user(username=username, password="pass123", is_active=True, **extra)
    if role:
        user.groups.add(Group.objects.get(name=role))
    return user


def client_for(user):
    c = APIClient()
    c.force_authenticate(user=user)
    return c


@pytest.fixture
def user(db):
    return make_user("testadmin", "ADMIN", first_name="Test", last_name="Admin")


@pytest.fixture
def api_client(user):
    return client_for(user)


@pytest.fixture
def doctor(db):
    return make_user("drhouse", "DOCTOR", first_name="Greg", last_name="House")


@pytest.fixture
def doctor_client(doctor):
    return client_for(doctor)


@pytest.fixture
def reviewer(db):
    return make_user("privacy1", "PRIVACY_OFFICER")


@pytest.fixture
def reviewer_client(reviewer):
    return client_for(reviewer)


@pytest.fixture
def actor():
    return ActorContext(
        user_id="42",
        display_name="Nurse Joy",
        role="NURSE",
        source_ip="10.0.0.5",
        user_agent="pytest",
        session_id="sess-1",
    )


@pytest.fixture
def signer():
    return IntegritySigner("unit-test-key")


@pytest.fixture
def audit_service(db):
    return build_audit_service()


@pytest.fixture
def patient(db):
    return Patient.objects.create(
        mrn="MRN-TEST-001",
        first_name="Jane",
        last_name="Doe",
        email="jane.doe@example.com",
        phone="(555) 123-4567",
        ssn="123-45-6789",
        notes="Allergic to penicillin",
    )


@pytest.fixture
def reception_client(db):
    return client_for(make_user("frontdesk", "RECEPTION"))
