# ehr_core/encounters/selectors.py
from __future__ import annotations

from uuid import UUID

from ehr_core.encounters.models import Encounter


def find_encounter(*, encounter_id) -> Encounter | None:
    try:
        eid = UUID(str(encounter_id))
    except ValueError:
        return None
    return Encounter.objects.select_related("patient").filter(id=eid).first()
