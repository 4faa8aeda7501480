"""
Diff utilities for dynamic forms.
Tracks which fields of a value map differ from the seeded defaults using
DeepDiff, with normalization so that empty inputs and absent keys compare equal.
"""

from typing import Any, Dict, List, Optional, Set
from deepdiff import DeepDiff
import logging

logger = logging.getLogger(__name__)


def _normalize_value(value: Any) -> Any:
    """Normalize one value for comparison."""
    if isinstance(value, str):
        return value if value != '' else None
    if isinstance(value, dict):
        return {k: _normalize_value(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_normalize_value(v) for v in value]
    if isinstance(value, (set, frozenset)):
        return sorted((_normalize_value(v) for v in value), key=repr)
    return value


def normalize_values(data: Optional[Dict[str, Any]], fields: Optional[Set[str]] = None) -> Dict[str, Any]:
    """
    Normalize a value map for comparison.

    Empty strings become None and None entries are dropped, so a cleared input
    compares equal to a field that was never filled in.

    Args:
        data: Value map
        fields: Optional set of names to restrict the result to

    Returns:
        Normalized copy of the value map
    """
    normalized = {}
    for key, value in (data or {}).items():
        if fields is not None and key not in fields:
            continue
        value = _normalize_value(value)
        if value is None:
            continue
        normalized[key] = value
    return normalized


def calculate_changes(
    original: Dict[str, Any],
    modified: Dict[str, Any],
    fields: Optional[Set[str]] = None
) -> Dict[str, Dict[str, Any]]:
    """
    Calculate per-field changes between two value maps.

    Args:
        original: Baseline values (usually the seeded defaults)
        modified: Current values
        fields: Optional set of names to scope the comparison to

    Returns:
        Mapping of field name to {'old': ..., 'new': ...} for every changed field
    """
    before = normalize_values(original, fields)
    after = normalize_values(modified, fields)

    diff = DeepDiff(before, after, ignore_order=True, view='tree')
    changed: Set[str] = set()
    for report_type, levels in diff.items():
        for level in levels:
            path = level.path(output_format='list')
            if path:
                changed.add(str(path[0]))
            else:
                logger.debug(f"Ignoring root-level {report_type} change")

    return {name: {'old': before.get(name), 'new': after.get(name)} for name in sorted(changed)}


def changed_fields(original: Dict[str, Any], modified: Dict[str, Any], fields: Optional[Set[str]] = None) -> List[str]:
    """Sorted names of fields whose values differ."""
    return list(calculate_changes(original, modified, fields))
