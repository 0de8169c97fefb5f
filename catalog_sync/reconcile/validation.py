"""One-pass validation of desired specs.

Every check runs even when an earlier one failed, so a client sees all
violations of a payload at once. Type errors come from the Pydantic spec
model; presence, enum, format and duplicate-key checks run against the raw
camelCase payload so their paths match what the client sent.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence, Set, Tuple

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from ..errors import FieldViolation, ValidationError
from .descriptors import KindDescriptor

logger = logging.getLogger(__name__)

ROOT = "spec"


def _loc_to_path(loc: Sequence[Any]) -> str:
    path = ROOT
    for part in loc:
        if isinstance(part, int):
            path += f"[{part}]"
        else:
            path += f".{part}"
    return path


def _field_path(dotted: str) -> str:
    # metadata.name is authoritative for the name
    return "metadata.name" if dotted == "name" else f"{ROOT}.{dotted}"


def walk(node: Any, path: str, prefix: str = ROOT) -> Iterator[Tuple[str, Any]]:
    """Yield ``(path, value)`` pairs for a dotted path with ``[]`` list steps.

    Missing or null steps yield nothing.
    """
    if not path:
        yield prefix, node
        return
    head, _, rest = path.partition(".")
    if head.endswith("[]"):
        name = head[:-2]
        items = node.get(name) if isinstance(node, Mapping) else None
        if isinstance(items, list):
            for i, item in enumerate(items):
                yield from walk(item, rest, f"{prefix}.{name}[{i}]")
        return
    if isinstance(node, Mapping) and node.get(head) is not None:
        yield from walk(node[head], rest, f"{prefix}.{head}")


def is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, dict)):
        return not value
    return False


def _has_path(raw: Mapping[str, Any], dotted: str) -> bool:
    node: Any = raw
    for step in dotted.split("."):
        if not isinstance(node, Mapping) or step not in node:
            return False
        node = node[step]
    return True


def _get_path(raw: Mapping[str, Any], dotted: str) -> Any:
    node: Any = raw
    for step in dotted.split("."):
        if not isinstance(node, Mapping):
            return None
        node = node.get(step)
    return node


def _type_violations(
    descriptor: KindDescriptor, raw: Mapping[str, Any]
) -> Tuple[Optional[BaseModel], List[FieldViolation]]:
    try:
        return descriptor.spec_model.model_validate(raw), []
    except PydanticValidationError as exc:
        return None, [
            FieldViolation(_loc_to_path(err.get("loc", ())), err.get("msg", "invalid"))
            for err in exc.errors()
        ]


def _required_violations(
    descriptor: KindDescriptor, raw: Mapping[str, Any], partial: bool
) -> List[FieldViolation]:
    violations: List[FieldViolation] = []
    for dotted in descriptor.required:
        present = _has_path(raw, dotted)
        if partial and not present:
            continue
        if is_blank(_get_path(raw, dotted)):
            message = "must not be empty" if present else "is required"
            violations.append(FieldViolation(_field_path(dotted), message))
    return violations


def _enum_violations(
    descriptor: KindDescriptor, raw: Mapping[str, Any], skip: Set[str]
) -> List[FieldViolation]:
    violations: List[FieldViolation] = []
    for constraint in descriptor.enums:
        for path, value in walk(raw, constraint.path):
            if path in skip:
                continue
            if not isinstance(value, str) or value not in constraint.allowed:
                violations.append(
                    FieldViolation(
                        path, "must be one of: " + ", ".join(constraint.allowed)
                    )
                )
    return violations


def _duplicate_violations(
    descriptor: KindDescriptor, model: BaseModel
) -> List[FieldViolation]:
    violations: List[FieldViolation] = []
    for collection in descriptor.collections:
        if collection.key is None:
            continue
        items = getattr(model, collection.attr, None) or []
        seen: Dict[Any, int] = {}
        for i, item in enumerate(items):
            item_key = collection.key(item)
            if item_key in seen:
                violations.append(
                    FieldViolation(
                        f"{collection.path}[{i}]{collection.key_suffix}",
                        f"duplicate key '{item_key}' (first at index {seen[item_key]})",
                    )
                )
            else:
                seen[item_key] = i
    return violations


def validate_payload(
    descriptor: KindDescriptor, raw: Mapping[str, Any], *, partial: bool = False
) -> BaseModel:
    """Validate ``raw`` against ``descriptor`` and return the parsed spec.

    Parameters
    ----------
    descriptor: KindDescriptor
        Kind whose spec model and constraints apply.
    raw: Mapping[str, Any]
        Client payload with camelCase keys (``metadata.name`` folded in as
        ``name``).
    partial: bool
        Update semantics: only fields present in ``raw`` are checked for
        presence.

    Raises
    ------
    ValidationError
        With every violation found, when there is at least one.
    """
    if not isinstance(raw, Mapping):
        raise ValidationError(
            f"Invalid {descriptor.label} spec",
            [FieldViolation(ROOT, "must be an object")],
        )

    model, violations = _type_violations(descriptor, raw)
    violations.extend(_required_violations(descriptor, raw, partial))
    already = {v.field for v in violations}
    violations.extend(_enum_violations(descriptor, raw, already))
    for check in descriptor.checks:
        violations.extend(check(raw))
    if model is not None:
        violations.extend(_duplicate_violations(descriptor, model))

    if violations or model is None:
        logger.info(
            "validation.failed",
            extra={
                "kind": descriptor.label,
                "partial": partial,
                "violations": len(violations),
            },
        )
        raise ValidationError(
            f"Invalid {descriptor.label} spec: {len(violations)} violation(s)",
            violations,
        )
    return model
