from dataclasses import dataclass, field
from typing import Dict, Iterable, Optional

from kycflow.core.steps import NOT_STARTED, MODE_ONLINE


def initial_steps(sequence: Iterable[str]) -> Dict[str, str]:
    return {s: NOT_STARTED for s in sequence}


@dataclass
class WorkflowState:
    # Step id -> StepStatus. Key set is exactly the configured sequence.
    steps: Dict[str, str] = field(default_factory=dict)
    currentStep: str = ""

    # online/offline; persisted under its own key as well
    mode: str = MODE_ONLINE

    # Correlation identifiers set by the provider / backend
    providerSessionId: Optional[str] = None
    providerDocumentId: Optional[str] = None
    workflowId: Optional[str] = None
    # Provider document id per verified step
    stepDocumentIds: Dict[str, str] = field(default_factory=dict)

    # Monotonic "ever completed" ledger, cleared only by a full reset.
    previouslyCompletedSteps: Dict[str, bool] = field(default_factory=dict)

    @classmethod
    def initial(cls, sequence) -> "WorkflowState":
        steps = list(sequence)
        return cls(steps=initial_steps(steps), currentStep=steps[0] if steps else "")

    def copy(self) -> "WorkflowState":
        return WorkflowState(
            steps=dict(self.steps),
            currentStep=self.currentStep,
            mode=self.mode,
            providerSessionId=self.providerSessionId,
            providerDocumentId=self.providerDocumentId,
            workflowId=self.workflowId,
            stepDocumentIds=dict(self.stepDocumentIds),
            previouslyCompletedSteps=dict(self.previouslyCompletedSteps),
        )
