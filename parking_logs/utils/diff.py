def diff_fields(old: dict, new: dict):
    """Field-level changes between two snapshots of the same resource."""
    old = old or {}
    new = new or {}

    changes = {}
    for field in sorted(set(old) | set(new)):
        old_value = old.get(field)
        new_value = new.get(field)
        if old_value != new_value:
            changes[field] = {
                "from": old_value,
                "to": new_value,
            }

    return changes
