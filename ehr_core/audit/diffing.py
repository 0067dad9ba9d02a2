# ehr_core/audit/diffing.py
"""
Before/after comparison producing the change descriptor stored on an audit record.

Values are compared raw and masked afterwards, so two distinct raw values
that mask to the same string still count as a change.
"""
from __future__ import annotations

import enum
import math
import uuid
from dataclasses import dataclass
from datetime import date, datetime, time
from decimal import Decimal
from typing import Any, Iterable, Mapping, Optional, Sequence

from ehr_core.audit.constants import ABSENT_MARKER, AuditAction
from ehr_core.audit.exceptions import DiffConstructionError
from ehr_core.audit.masking import MaskingPolicy

EntitySnapshot = Mapping[str, Any]

_SCALAR_TYPES = (str, int, bool, Decimal, uuid.UUID, datetime, date, time, enum.Enum)


@dataclass(frozen=True)
class ChangeDescriptor:
    action: str
    changed_fields: tuple[str, ...]
    old_values: Optional[dict[str, Any]]
    new_values: Optional[dict[str, Any]]

    @property
    def has_changes(self) -> bool:
        return bool(self.changed_fields)


def snapshot(instance, fields: Iterable[str] | None = None) -> dict[str, Any] | None:
    """
    EntitySnapshot of a model instance.
    Uses attname so foreign keys are captured as ids (patient -> patient_id).
    """
    if instance is None:
        return None
    concrete = {f.name: f for f in instance._meta.concrete_fields}
    names = list(fields) if fields is not None else list(concrete)
    data: dict[str, Any] = {}
    for name in names:
        field = concrete.get(name)
        attr = field.attname if field is not None else name
        data[attr] = getattr(instance, attr)
    return data


def canonical_field_order(fields: Iterable[str], field_order: Sequence[str] | None = None) -> tuple[str, ...]:
    """
    Explicit field_order entries first (in that order), then everything else by name.
    Never insertion order.
    """
    present = set(fields)
    ordered = [f for f in (field_order or ()) if f in present]
    seen = set(ordered)
    ordered.extend(sorted(present - seen))
    return tuple(ordered)


def _check_value(path: str, value: Any) -> None:
    if value is None or isinstance(value, _SCALAR_TYPES):
        return
    if isinstance(value, float):
        if math.isnan(value):
            raise DiffConstructionError(f"Field '{path}' holds NaN, which cannot be compared.")
        return
    if isinstance(value, Mapping):
        for k, v in value.items():
            if not isinstance(k, str):
                raise DiffConstructionError(f"Field '{path}' has a non-string key {k!r}.")
            _check_value(f"{path}.{k}", v)
        return
    if isinstance(value, (list, tuple)):
        for i, v in enumerate(value):
            _check_value(f"{path}[{i}]", v)
        return
    raise DiffConstructionError(f"Field '{path}' has unsupported type {type(value).__name__}.")


def _validate_snapshot(label: str, snap: Any) -> None:
    if not isinstance(snap, Mapping):
        raise DiffConstructionError(f"'{label}' snapshot must be a mapping, got {type(snap).__name__}.")
    for key, value in snap.items():
        if not isinstance(key, str) or not key:
            raise DiffConstructionError(f"'{label}' snapshot has an invalid field name {key!r}.")
        _check_value(key, value)


class DiffEngine:
    def __init__(self, policy: MaskingPolicy | None = None) -> None:
        self._policy = policy or MaskingPolicy()

    @property
    def policy(self) -> MaskingPolicy:
        return self._policy

    def diff(
        self,
        before: EntitySnapshot | None,
        after: EntitySnapshot | None,
        action: str,
        *,
        field_order: Sequence[str] | None = None,
    ) -> ChangeDescriptor:
        try:
            action = AuditAction(action)
        except ValueError:
            raise DiffConstructionError(f"Unknown audit action '{action}'.")

        if action == AuditAction.READ:
            return ChangeDescriptor(action=action.value, changed_fields=(), old_values=None, new_values=None)

        if action == AuditAction.CREATE:
            if before is not None:
                raise DiffConstructionError("A create has no 'before' snapshot.")
            if after is None:
                raise DiffConstructionError("A create requires an 'after' snapshot.")
            _validate_snapshot("after", after)
            fields = canonical_field_order(after.keys(), field_order)
            return ChangeDescriptor(
                action=action.value,
                changed_fields=fields,
                old_values=None,
                new_values=self._policy.mask_fields(after, fields),
            )

        if action == AuditAction.DELETE:
            if after is not None:
                raise DiffConstructionError("A delete has no 'after' snapshot.")
            if before is None:
                raise DiffConstructionError("A delete requires a 'before' snapshot.")
            _validate_snapshot("before", before)
            fields = canonical_field_order(before.keys(), field_order)
            return ChangeDescriptor(
                action=action.value,
                changed_fields=fields,
                old_values=self._policy.mask_fields(before, fields),
                new_values=None,
            )

        # update
        if before is None or after is None:
            raise DiffConstructionError("An update requires both 'before' and 'after' snapshots.")
        _validate_snapshot("before", before)
        _validate_snapshot("after", after)

        changed = []
        for name in set(before) | set(after):
            in_before = name in before
            in_after = name in after
            if in_before and in_after:
                if _differs(before[name], after[name]):
                    changed.append(name)
            else:
                changed.append(name)

        fields = canonical_field_order(changed, field_order)
        old_values: dict[str, Any] = {}
        new_values: dict[str, Any] = {}
        for name in fields:
            old_values[name] = self._policy.mask(name, before[name]) if name in before else ABSENT_MARKER
            new_values[name] = self._policy.mask(name, after[name]) if name in after else ABSENT_MARKER

        return ChangeDescriptor(
            action=action.value,
            changed_fields=fields,
            old_values=old_values,
            new_values=new_values,
        )


def _differs(old: Any, new: Any) -> bool:
    if old is None or new is None:
        return old is not new
    # bool is an int subclass: True == 1 must still count as a change
    if isinstance(old, bool) != isinstance(new, bool):
        return True
    if isinstance(old, (list, tuple)) and isinstance(new, (list, tuple)):
        return len(old) != len(new) or any(_differs(a, b) for a, b in zip(old, new))
    if isinstance(old, Mapping) and isinstance(new, Mapping):
        if set(old) != set(new):
            return True
        return any(_differs(old[k], new[k]) for k in old)
    return old != new


def diff(
    before: EntitySnapshot | None,
    after: EntitySnapshot | None,
    action: str,
    *,
    field_order: Sequence[str] | None = None,
    policy: MaskingPolicy | None = None,
) -> ChangeDescriptor:
    return DiffEngine(policy).diff(before, after, action, field_order=field_order)
