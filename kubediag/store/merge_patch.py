"""JSON merge-patch (RFC 7386) computation.

Walks a snapshot and its locally mutated copy in parallel and emits only the
members that differ. Removed members become ``null`` and lists are replaced
wholesale, as merge-patch has no way to address list elements.
"""

from __future__ import annotations

from typing import Any, cast

from kubediag.models.diagnosis import PodDiagnosis

# Recursive value types that appear in a JSON document
_JSONValue = dict[str, object] | list[object] | str | int | float | bool | None


def create_merge_patch(original: dict[str, Any], modified: dict[str, Any]) -> dict[str, Any]:
    """Return the merge-patch that turns *original* into *modified*.

    An empty dict means the two documents are identical.
    """
    return _diff_dicts(original, modified)


def diagnosis_status_patch(snapshot: PodDiagnosis, mutated: PodDiagnosis) -> dict[str, Any]:
    """Build the status merge-patch between two versions of a PodDiagnosis.

    The patch carries the snapshot's ``resourceVersion`` so the API server
    rejects it with 409 if the object changed since the snapshot was read.
    Returns an empty dict if the status did not change.
    """
    patch = create_merge_patch(
        {"status": snapshot.status.to_dict()},
        {"status": mutated.status.to_dict()},
    )
    if not patch:
        return {}
    if snapshot.resource_version:
        patch["metadata"] = {"resourceVersion": snapshot.resource_version}
    return patch


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _diff_dicts(old_dict: dict[str, Any], new_dict: dict[str, Any]) -> dict[str, Any]:
    """Diff two objects member by member, recursing into nested objects."""
    patch: dict[str, Any] = {}
    for key in sorted(old_dict.keys() | new_dict.keys()):
        if key not in new_dict:
            patch[key] = None
            continue
        new_val = cast(_JSONValue, new_dict[key])
        if key not in old_dict:
            patch[key] = new_val
            continue
        old_val = cast(_JSONValue, old_dict[key])
        if isinstance(old_val, dict) and isinstance(new_val, dict):
            nested = _diff_dicts(old_val, new_val)
            if nested:
                patch[key] = nested
        elif old_val != new_val:
            patch[key] = new_val
    return patch
