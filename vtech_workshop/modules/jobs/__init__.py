from .billing import JobBilling
from .notify import StatusMessage, status_message
from .status import check_transition, is_closed

__all__ = ["JobBilling", "StatusMessage", "check_transition", "is_closed", "status_message"]
