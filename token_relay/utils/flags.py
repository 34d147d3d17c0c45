TRUTHY_VALUES = {"1", "yes", "true"}


def parse_force_flag(value: str | None) -> bool:
    """Return True for "1", "yes" or "true" (any case). Missing or anything else is False."""
    if value is None:
        return False
    return value.strip().lower() in TRUTHY_VALUES
