"""Planning of actions for inspected cache entries."""

from cachekill.models import CacheEntry, PlannedAction, RunMode, SimulatedAction


def decide_action(entry: CacheEntry, force: bool, safe_delete: bool) -> PlannedAction:
    """
    Action delete mode takes for one entry.

    Args:
        entry: Inspected entry
        force: Act on entries regardless of staleness
        safe_delete: Move to a backup instead of removing

    Returns:
        BACKUP or DELETE when the entry is actionable, else SKIP
    """
    if not (force or entry.stale):
        return PlannedAction.SKIP
    return PlannedAction.BACKUP if safe_delete else PlannedAction.DELETE


def plan(
    entries: list[CacheEntry],
    mode: RunMode,
    force: bool = False,
    safe_delete: bool = True,
) -> list[CacheEntry]:
    """
    Assign a planned action to every entry.

    Args:
        entries: Inspected entries (left unmodified)
        mode: Execution mode
        force: Act on entries regardless of staleness
        safe_delete: Back up instead of deleting outright

    Returns:
        Copies of the entries with planned_action set

    Raises:
        ValueError: For restore mode, which works from the backup manifest
    """
    if mode == RunMode.RESTORE:
        raise ValueError("restore does not plan entries")

    planned = []
    for entry in entries:
        if mode == RunMode.DELETE:
            action = decide_action(entry, force, safe_delete)
        else:
            action = PlannedAction.SKIP
        planned.append(entry.model_copy(update={"planned_action": action}, deep=True))
    return planned


def simulate(
    entries: list[CacheEntry],
    force: bool = False,
    safe_delete: bool = True,
) -> list[SimulatedAction]:
    """What delete mode would do to each entry."""
    return [
        SimulatedAction(
            path=entry.path,
            action=decide_action(entry, force, safe_delete),
            size_bytes=entry.size_bytes,
        )
        for entry in entries
    ]
