"""
OR-group resolution.

Requirement records are stored flat; a shared non-null `or_group_id` is the
only thing tying alternatives together. Every reader rebuilds the grouped view
from the flat list with resolve_groups(); the nested shape is never stored.

Group shapes:
  {"type": "standalone",   "group_id": <record id>, "is_critical": bool,
   "record": {...}, "inconsistent": bool, "stale_or_group_id": str | None}
  {"type": "alternatives", "group_id": <or_group_id>, "is_critical": bool,
   "records": [{...}, {...}, ...]}
"""

from requirements import MIN_GROUP_SIZE


def _collect_members(records: list[dict]) -> tuple[list[str], dict[str, list[dict]]]:
    """Return (first-appearance order of or_group_ids, or_group_id -> members)."""
    order: list[str] = []
    members: dict[str, list[dict]] = {}
    for record in records:
        gid = record.get("or_group_id")
        if not gid:
            continue
        if gid not in members:
            members[gid] = []
            order.append(gid)
        members[gid].append(record)
    return order, members


def _standalone(record: dict, stale_or_group_id: str | None = None) -> dict:
    return {
        "type": "standalone",
        "group_id": record.get("id"),
        "is_critical": bool(record.get("is_critical")),
        "record": record,
        "inconsistent": stale_or_group_id is not None,
        "stale_or_group_id": stale_or_group_id,
    }


def resolve_groups(records: list[dict]) -> list[dict]:
    """
    Group a flat requirement list into stand-alone requirements and OR-groups.

    Output order follows the first appearance of each stand-alone record or
    or_group_id; members of a group need not be contiguous in the input.
    A group is critical if any member is critical.

    An or_group_id that labels a single record is stale data. It is returned
    as a stand-alone requirement flagged `inconsistent` rather than rejected.
    """
    _, members = _collect_members(records)

    groups: list[dict] = []
    emitted: set[str] = set()
    for record in records:
        gid = record.get("or_group_id")
        if not gid:
            groups.append(_standalone(record))
            continue
        if gid in emitted:
            continue
        emitted.add(gid)

        group_members = members[gid]
        if len(group_members) < MIN_GROUP_SIZE:
            groups.append(_standalone(record, stale_or_group_id=gid))
            continue
        groups.append({
            "type": "alternatives",
            "group_id": gid,
            "is_critical": any(bool(r.get("is_critical")) for r in group_members),
            "records": list(group_members),
        })
    return groups


def group_records(group: dict) -> list[dict]:
    """Member records of a resolved group, whichever variant it is."""
    if group["type"] == "alternatives":
        return group["records"]
    return [group["record"]]


def find_singleton_groups(records: list[dict]) -> list[str]:
    """or_group_ids that label exactly one record."""
    order, members = _collect_members(records)
    return [gid for gid in order if len(members[gid]) < MIN_GROUP_SIZE]


def group_labels(records: list[dict]) -> dict[str, str]:
    """
    Display labels for live OR-groups: {"<or_group_id>": "OR Group 1", ...},
    numbered in first-appearance order. Stale single-member ids get no label.
    """
    order, members = _collect_members(records)
    live = [gid for gid in order if len(members[gid]) >= MIN_GROUP_SIZE]
    return {gid: f"OR Group {i + 1}" for i, gid in enumerate(live)}
