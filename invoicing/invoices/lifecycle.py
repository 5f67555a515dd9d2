"""Invoice status lifecycle.

    uploading -> processing -> processed -> confirmed -> sent_to_accountant
         \\            \\
          +-> error     +-> error

``error`` is terminal for the automated pipeline. A manual retry is a new upload.
"""

from invoicing.invoices.schema import InvoiceStatus

ALLOWED_TRANSITIONS: dict[InvoiceStatus, frozenset[InvoiceStatus]] = {
    InvoiceStatus.UPLOADING: frozenset({InvoiceStatus.PROCESSING, InvoiceStatus.ERROR}),
    InvoiceStatus.PROCESSING: frozenset({InvoiceStatus.PROCESSED, InvoiceStatus.ERROR}),
    InvoiceStatus.PROCESSED: frozenset({InvoiceStatus.CONFIRMED}),
    InvoiceStatus.CONFIRMED: frozenset({InvoiceStatus.SENT_TO_ACCOUNTANT}),
    InvoiceStatus.SENT_TO_ACCOUNTANT: frozenset(),
    InvoiceStatus.ERROR: frozenset(),
}

# Position along the lifecycle; processed and error are the two pipeline outcomes
STATUS_RANK: dict[InvoiceStatus, int] = {
    InvoiceStatus.UPLOADING: 0,
    InvoiceStatus.PROCESSING: 1,
    InvoiceStatus.PROCESSED: 2,
    InvoiceStatus.ERROR: 2,
    InvoiceStatus.CONFIRMED: 3,
    InvoiceStatus.SENT_TO_ACCOUNTANT: 4,
}

# Statuses that still count as "in the pipeline" for dashboards
PENDING_STATUSES = frozenset({InvoiceStatus.PROCESSING, InvoiceStatus.PROCESSED})

# Statuses whose extracted fields may still be edited by a user
EDITABLE_STATUSES = frozenset(
    {
        InvoiceStatus.UPLOADING,
        InvoiceStatus.PROCESSING,
        InvoiceStatus.PROCESSED,
        InvoiceStatus.CONFIRMED,
    }
)


class InvalidTransitionError(Exception):
    """Raised when an update would move an invoice along a forbidden edge."""

    def __init__(self, invoice_id: str, current: InvoiceStatus, target: InvoiceStatus) -> None:
        self.invoice_id = invoice_id
        self.current = current
        self.target = target
        super().__init__(
            f"Invoice {invoice_id} cannot move from '{current.value}' to '{target.value}'"
        )


def can_transition(current: InvoiceStatus, target: InvoiceStatus) -> bool:
    """Check whether ``current -> target`` is an edge of the lifecycle."""
    return target in ALLOWED_TRANSITIONS[current]


def is_ahead(candidate: InvoiceStatus, current: InvoiceStatus | None) -> bool:
    """Check whether ``candidate`` is strictly later in the lifecycle than ``current``.

    Status only moves forward, so an observation that is not ahead of the last
    one seen is a stale snapshot.
    """
    if current is None:
        return True
    return STATUS_RANK[candidate] > STATUS_RANK[current]


def sources_for(target: InvoiceStatus) -> frozenset[InvoiceStatus]:
    """All statuses from which ``target`` can be reached in one step."""
    return frozenset(
        status for status, targets in ALLOWED_TRANSITIONS.items() if target in targets
    )
