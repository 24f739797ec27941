from typing import Sequence


class NotFoundError(ValueError):
    pass


class StoreRejectedError(ValueError):
    pass


class PartialPropagationError(ValueError):
    """A scoped mutation stopped after some of its steps were committed.

    The store is left in the intermediate state. ``completed`` lists the steps
    that went through, ``failed_step`` the one that raised; the original error
    is chained as ``__cause__``.
    """

    def __init__(self, failed_step: object, completed: Sequence[object]) -> None:
        self.failed_step = failed_step
        self.completed = list(completed)
        super().__init__(
            f"Scoped change stopped at {failed_step} after "
            f"{len(self.completed)} committed step(s)"
        )
