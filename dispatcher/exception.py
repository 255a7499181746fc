class SubmissionIdNotFoundError(Exception):
    pass


class DuplicatedSubmissionIdError(Exception):
    pass


class InvalidStatusTransitionError(Exception):

    def __init__(self, submission_id, current, target):
        super().__init__(
            f"illegal status transition for {submission_id}: {current} -> {target}"
        )
        self.submission_id = submission_id
        self.current = current
        self.target = target


class DispatcherStoppedError(RuntimeError):
    pass


class StoreError(RuntimeError):
    """The submission store could not be reached or answered garbage."""
