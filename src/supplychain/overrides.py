"""
Override patches for assumption documents and node records.

An override document is reduced to a list of explicit patches:

- ``SetPatch(path, value)`` replaces the leaf at ``path``.
- ``MergePatch(path, subtree)`` merges a partial subtree into ``path``; plain
  mappings recurse, everything else (numbers, strings, lists) becomes a
  ``SetPatch`` on the corresponding key. Lists are replaced, never merged.

`apply_patches` is the single reducer. It never mutates its input and is
fail-soft: a patch whose path does not exist in the base document, or whose
value does not match the shape of the base leaf, is skipped with a warning
and the base value is kept. A bare number aimed at a value record
(``{"value": ..., "confidence": ...}``) is normalized into a copy of that
record with the new value.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Tuple, Union

from src.utils.logging_utils import get_logger

logger = get_logger(__name__)

Path = Tuple[str, ...]


@dataclass(frozen=True)
class SetPatch:
    path: Path
    value: Any


@dataclass(frozen=True)
class MergePatch:
    path: Path
    subtree: Mapping[str, Any]


Patch = Union[SetPatch, MergePatch]


def is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def is_value_record(value: Any) -> bool:
    return isinstance(value, dict) and "value" in value


def _format_path(path: Path) -> str:
    return ".".join(path) if path else "<root>"


def _lookup(doc: Any, path: Path) -> Tuple[bool, Any]:
    node = doc
    for key in path:
        if not isinstance(node, dict) or key not in node:
            return False, None
        node = node[key]
    return True, node


def _normalize_leaf(template: Any, value: Any) -> Tuple[bool, Any]:
    """Return (accepted, normalized value) for `value` replacing `template`."""
    if value is None:
        return False, None
    if template is None:
        # unset optional leaf; the owner validates the result
        return True, copy.deepcopy(value)
    if is_value_record(template):
        if is_number(value):
            record = copy.deepcopy(template)
            record["value"] = value
            return True, record
        if is_value_record(value) and is_number(value["value"]):
            record = copy.deepcopy(template)
            record.update(copy.deepcopy(value))
            return True, record
        return False, None
    if is_number(template):
        return is_number(value), value
    if isinstance(template, str):
        return isinstance(value, str), value
    if isinstance(template, list):
        return isinstance(value, list), copy.deepcopy(value)
    if isinstance(template, dict):
        return isinstance(value, dict), copy.deepcopy(value)
    return False, None


def _set_in(doc: Dict[str, Any], path: Path, value: Any) -> None:
    node = doc
    for key in path[:-1]:
        node = node[key]
    node[path[-1]] = value


def expand(patch: Patch) -> Iterable[SetPatch]:
    """Flatten a patch into leaf-level `SetPatch`es."""
    if isinstance(patch, SetPatch):
        yield patch
        return
    for key, value in patch.subtree.items():
        child = patch.path + (str(key),)
        if isinstance(value, dict) and not is_value_record(value):
            yield from expand(MergePatch(child, value))
        else:
            yield SetPatch(child, value)


def apply_patch(doc: Dict[str, Any], patch: Patch) -> Dict[str, Any]:
    """Apply one patch to a copy of `doc`."""
    return apply_patches(doc, [patch])


def apply_patches(doc: Dict[str, Any], patches: Iterable[Patch]) -> Dict[str, Any]:
    """Apply patches in order to a deep copy of `doc`; later patches win."""
    out = copy.deepcopy(doc)
    for patch in patches:
        for leaf in expand(patch):
            if not leaf.path:
                logger.warning("Ignoring override with empty path")
                continue
            found, template = _lookup(out, leaf.path)
            if not found:
                logger.warning(f"Ignoring override for unknown path {_format_path(leaf.path)}")
                continue
            accepted, value = _normalize_leaf(template, leaf.value)
            if not accepted:
                if leaf.value is not None:
                    logger.warning(
                        f"Ignoring override for {_format_path(leaf.path)}: "
                        f"{type(leaf.value).__name__} does not match base {type(template).__name__}"
                    )
                continue
            _set_in(out, leaf.path, value)
    return out


def patches_from_document(override_doc: Mapping[str, Any], prefix: Path = ()) -> List[Patch]:
    """Turn a sparse deep-merge document into patches (one merge per top-level key)."""
    patches: List[Patch] = []
    for key, value in (override_doc or {}).items():
        path = prefix + (str(key),)
        if isinstance(value, dict) and not is_value_record(value):
            patches.append(MergePatch(path, value))
        else:
            patches.append(SetPatch(path, value))
    return patches


def delta_patches(doc: Mapping[str, Any], deltas: Mapping[str, float]) -> List[SetPatch]:
    """
    Build patches that add `amount` to a leaf of every time block.

    Keys look like ``"demand.inference_growth.consumer"``: the first part is
    the table, the rest the leaf path inside each block. For tables that are
    not split into blocks (``translation``) the path is used as-is.
    """
    patches: List[SetPatch] = []
    for dotted, amount in deltas.items():
        table, *rest = dotted.split(".")
        if table not in doc or not rest:
            logger.warning(f"Ignoring delta for unknown path {dotted}")
            continue
        candidates: List[Path] = []
        found, _ = _lookup(doc, (table, *rest))
        if found:
            candidates.append((table, *rest))
        else:
            for block in doc[table]:
                if _lookup(doc, (table, block, *rest))[0]:
                    candidates.append((table, block, *rest))
        if not candidates:
            logger.warning(f"Ignoring delta for unknown path {dotted}")
        for path in candidates:
            _, current = _lookup(doc, path)
            base = current["value"] if is_value_record(current) else current
            if not is_number(base):
                logger.warning(f"Ignoring delta for non-numeric leaf {_format_path(path)}")
                continue
            patches.append(SetPatch(path, base + amount))
    return patches


def normalize_to_template(template: Any, overrides: Any) -> Any:
    """Wrap bare numbers aimed at value records, recursively; other values pass through."""
    if not isinstance(overrides, dict) or not isinstance(template, dict):
        return overrides
    out = dict(overrides)
    for key, value in overrides.items():
        base = template.get(key)
        if value is None:
            continue
        if is_number(value) and is_value_record(base):
            record = copy.deepcopy(base)
            record["value"] = value
            out[key] = record
        elif isinstance(value, dict) and isinstance(base, dict):
            out[key] = normalize_to_template(base, value)
    return out


def clamp_changes(prev: Any, nxt: Any, max_delta: float, path: str = "") -> Tuple[Any, List[str]]:
    """
    Clamp every numeric leaf present in both documents to ±max_delta of its previous value.

    Returns (clamped document, list of clamp messages). Leaves whose previous
    value is zero, and keys absent from `prev`, pass through unchanged.
    """
    warnings: List[str] = []

    if is_number(nxt) and is_number(prev) and prev != 0:
        delta = (nxt - prev) / abs(prev)
        if abs(delta) > max_delta:
            direction = 1.0 if delta > 0 else -1.0
            clamped = float(f"{prev + direction * abs(prev) * max_delta:.6g}")
            warnings.append(f"Clamped {path}: {prev} -> {nxt} ({delta * 100:.1f}%) -> {clamped}")
            return clamped, warnings
        return nxt, warnings

    # bare number against a value record, either way round
    if is_number(nxt) and is_value_record(prev):
        return clamp_changes(prev["value"], nxt, max_delta, path)
    if is_value_record(nxt) and is_number(prev):
        record = dict(nxt)
        record["value"], warnings = clamp_changes(prev, nxt["value"], max_delta, path)
        return record, warnings

    if isinstance(nxt, dict) and isinstance(prev, dict):
        out = dict(nxt)
        for key, value in nxt.items():
            if key in prev:
                sub, sub_warnings = clamp_changes(prev[key], value, max_delta, f"{path}.{key}" if path else key)
                out[key] = sub
                warnings.extend(sub_warnings)
        return out, warnings

    return nxt, warnings


def merge_override_pass(
    previous: Mapping[str, Any],
    proposed: Mapping[str, Any],
    max_change_pct: float,
    effective: Mapping[str, Any] | None = None,
) -> Tuple[Dict[str, Any], List[str]]:
    """
    Fold one update pass into the persistent override layer.

    Each proposed leaf is clamped to ±max_change_pct percent of the value in
    force before the pass: `effective` when given (the base document with
    `previous` applied), otherwise `previous` itself. Returns the merged layer
    and the clamp messages, each of which is logged.
    """
    reference = previous if effective is None else effective
    clamped, clamps = clamp_changes(reference, dict(proposed), max_change_pct / 100.0)
    for message in clamps:
        logger.warning(message)
    return merge_documents(previous, clamped), clamps


def apply_override_document(
    base: Dict[str, Any],
    override_doc: Mapping[str, Any],
    max_change_pct: float | None = None,
    previous_document: Mapping[str, Any] | None = None,
) -> Dict[str, Any]:
    """
    Merge the persistent override layer into `base`.

    Without `previous_document` the layer is taken as already accepted and is
    applied as written. With it, `override_doc` is a new pass proposed on top
    of `previous_document`: its moves are bounded by `max_change_pct` against
    the values the previous layer put in force, and the merged layer is
    applied. Numbers are normalized against the base template first.
    """
    if previous_document is None or max_change_pct is None:
        layer = dict(override_doc or {})
        if previous_document:
            layer = merge_documents(previous_document, layer)
    else:
        previous = normalize_to_template(base, dict(previous_document))
        effective = apply_patches(base, patches_from_document(previous))
        layer, _ = merge_override_pass(
            previous, normalize_to_template(base, dict(override_doc or {})), max_change_pct, effective
        )
    if not layer:
        return copy.deepcopy(base)
    return apply_patches(base, patches_from_document(normalize_to_template(base, layer)))


def merge_documents(base: Mapping[str, Any], overlay: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Deep-merge two sparse override documents without a template.

    Mappings merge recursively; every other value in `overlay` (lists
    included) replaces the base value. New keys are kept.
    """
    out = copy.deepcopy(dict(base))
    for key, value in overlay.items():
        if isinstance(value, dict) and isinstance(out.get(key), dict) and not is_value_record(value):
            out[key] = merge_documents(out[key], value)
        else:
            out[key] = copy.deepcopy(value)
    return out
