"""
prepaid_modules.refund.workflows
================================

Refund case lifecycle, declared once.  ``RefundService`` asks the workflow
which transition an action triggers; anything undeclared raises
``InvalidTransitionError``.  A guarded transition fires only after the
service's check for that guard passes.

    PENDING  --approve-->  APPROVED  --complete-->  COMPLETED
    PENDING  --reject--->  REJECTED
    PENDING  --cancel--->  CANCELLED
"""

from prepaid_kernel.domain.workflow import Guard, Transition, Workflow
from prepaid_modules.refund.models import RefundStatus

PAYABLE_WITHIN_REFUNDABLE = Guard(
    name="payable_within_refundable",
    description="Approved payable amount is between 0 and the refundable amount",
)

CONTRACT_NOT_TERMINATED = Guard(
    name="contract_not_terminated",
    description="Contract has not been terminated by another refund",
)

REFUND_WORKFLOW = Workflow(
    name="refund_case",
    description="Refund request, approval and payout",
    initial_state=RefundStatus.PENDING.value,
    states=tuple(s.value for s in RefundStatus),
    transitions=(
        Transition(
            from_state=RefundStatus.PENDING.value,
            to_state=RefundStatus.APPROVED.value,
            action="approve",
            guard=PAYABLE_WITHIN_REFUNDABLE,
        ),
        Transition(
            from_state=RefundStatus.PENDING.value,
            to_state=RefundStatus.REJECTED.value,
            action="reject",
        ),
        Transition(
            from_state=RefundStatus.PENDING.value,
            to_state=RefundStatus.CANCELLED.value,
            action="cancel",
        ),
        Transition(
            from_state=RefundStatus.APPROVED.value,
            to_state=RefundStatus.COMPLETED.value,
            action="complete",
            guard=CONTRACT_NOT_TERMINATED,
            mutates_ledger=True,
        ),
    ),
    terminal_states=(
        RefundStatus.REJECTED.value,
        RefundStatus.COMPLETED.value,
        RefundStatus.CANCELLED.value,
    ),
)
