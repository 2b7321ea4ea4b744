"""Failures raised by the order workflow.

Every error is caught at the call site that triggered it (API exception
handlers, the seller dashboard) and reported; none is meant to crash a process.
"""


class OrderWorkflowError(Exception):
    """Base class for all order workflow failures."""

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message


class NotFound(OrderWorkflowError):
    """Order or store lookup miss, including orders owned by another store."""


class ValidationError(OrderWorkflowError):
    """A status value outside the enumerated set."""


# Status values are only checked for membership, there is no transition table
InvalidTransition = ValidationError


class NetworkFailure(OrderWorkflowError):
    """Transient transport failure. The user may retry the action."""


class AlreadyAssigned(OrderWorkflowError):
    """Another delivery partner accepted the order first."""


class OrderClosed(AlreadyAssigned):
    """The order was delivered or cancelled before the acceptance arrived."""


class AccessDenied(OrderWorkflowError):
    """The user is not a shopkeeper."""


class PendingApproval(OrderWorkflowError):
    """The shopkeeper account has not been approved yet."""


class PartialDispatchFailure(OrderWorkflowError):
    """Some delivery partners could not be reached during a broadcast.

    Reported alongside the dispatch result, never raised by the dispatcher.
    """

    def __init__(self, order_id: int, failed_partner_ids: list):
        self.order_id = order_id
        self.failed_partner_ids = list(failed_partner_ids)
        super().__init__(
            f"Order {order_id}: {len(self.failed_partner_ids)} delivery partner(s) unreachable"
        )
