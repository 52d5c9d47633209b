from ..entities import BatchState, GroupStatus

_BATCH_FLOW = {
    (BatchState.PENDING, "score"): BatchState.SCORING,
    (BatchState.SCORING, "assemble"): BatchState.ASSEMBLING,
    (BatchState.ASSEMBLING, "commit"): BatchState.COMMITTING,
    (BatchState.COMMITTING, "complete"): BatchState.COMPLETED,
}


def transition_batch_state(current: BatchState, action: str) -> BatchState:
    if current in {BatchState.COMPLETED, BatchState.FAILED}:
        return current

    if action == "fail":
        return BatchState.FAILED

    return _BATCH_FLOW.get((current, action), current)


def transition_group_status(current: GroupStatus, action: str) -> GroupStatus:
    if current == GroupStatus.ARCHIVED:
        return GroupStatus.ARCHIVED

    if action == "activate":
        if current == GroupStatus.CREATED:
            return GroupStatus.ACTIVE
        return current

    if action == "archive":
        return GroupStatus.ARCHIVED

    return current
