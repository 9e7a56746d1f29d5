# Step statuses and the ordered step sequence

from typing import Iterable, Iterator, List, Optional

# Lifecycle: untouched step. Initial value for every step.
NOT_STARTED = "not_started"

# Lifecycle: user is filling the step, or the provider is verifying it.
IN_PROGRESS = "in_progress"

# Lifecycle: step data was submitted (or provider verification succeeded).
COMPLETED = "completed"

# Lifecycle: provider reported a failure for the step. Recoverable.
FAILED = "failed"

# Lifecycle: user cancelled the provider verification. Recoverable.
CANCELLED = "cancelled"

STEP_STATUSES = (NOT_STARTED, IN_PROGRESS, COMPLETED, FAILED, CANCELLED)

# Statuses that claim progress and therefore require every earlier step to be done.
PROGRESS_STATUSES = (COMPLETED, IN_PROGRESS)

# Statuses that leave a step unfinished and block anything after it.
BLOCKING_STATUSES = (FAILED, CANCELLED, NOT_STARTED)


# Default onboarding steps
SIGNIN = "signin"
PERSONAL_DETAILS = "personal-details"
NOMINEE_POA = "nominee-poa"
BANK = "bank"
EXCHANGE = "exchange"
COMPLETION = "completion"

DEFAULT_SEQUENCE = (SIGNIN, PERSONAL_DETAILS, NOMINEE_POA, BANK, EXCHANGE, COMPLETION)


# KYC modes: selects which sub-path of later steps is relevant
MODE_ONLINE = "online"
MODE_OFFLINE = "offline"
MODES = (MODE_ONLINE, MODE_OFFLINE)


class StepSequence:
    """
    Fixed, ordered list of step identifiers. Index 0 is the entry step and the
    only one that is always accessible.
    """

    def __init__(self, steps: Iterable[str]):
        items = [str(s).strip() for s in steps]
        if not items or any(not s for s in items):
            raise ValueError("step sequence must contain at least one non-empty step id")
        if len(set(items)) != len(items):
            raise ValueError(f"step sequence has duplicate step ids: {items}")
        self._steps: List[str] = items

    @property
    def first(self) -> str:
        return self._steps[0]

    @property
    def steps(self) -> List[str]:
        return list(self._steps)

    def index(self, step: str) -> int:
        """Position of `step`, or -1 when it is not part of the sequence."""
        try:
            return self._steps.index(step)
        except ValueError:
            return -1

    def previous(self, step: str) -> Optional[str]:
        i = self.index(step)
        return self._steps[i - 1] if i > 0 else None

    def next(self, step: str) -> Optional[str]:
        i = self.index(step)
        if i < 0 or i >= len(self._steps) - 1:
            return None
        return self._steps[i + 1]

    def before(self, step: str) -> List[str]:
        """Steps strictly earlier than `step` (empty for the first or an unknown step)."""
        i = self.index(step)
        return self._steps[:i] if i > 0 else []

    def after(self, step: str) -> List[str]:
        i = self.index(step)
        return self._steps[i + 1:] if i >= 0 else []

    def require(self, step: str) -> str:
        if step not in self:
            raise ValueError(f"unknown step: {step!r}")
        return step

    def __contains__(self, step: object) -> bool:
        return step in self._steps

    def __iter__(self) -> Iterator[str]:
        return iter(self._steps)

    def __len__(self) -> int:
        return len(self._steps)

    def __repr__(self) -> str:
        return f"StepSequence({self._steps!r})"


def label(step: str) -> str:
    """Human-readable step name used in notices ("personal-details" -> "personal details")."""
    return step.replace("-", " ")
