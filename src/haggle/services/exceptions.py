# haggle/services/exceptions.py

class ServiceException(Exception):
    """Base exception for all service layer errors."""
    code = "service_error"

    def __init__(self, message: str):
        self.message = message
        super().__init__(self.message)

class Unauthenticated(ServiceException):
    """Raised when an operation needs a current user and there is none."""
    code = "unauthenticated"

class PlanNotFound(ServiceException):
    code = "plan_not_found"

class StoreNotConnected(ServiceException):
    """Raised on a paid plan change when no usable store credential exists."""
    code = "store_not_connected"

class QuotaExceeded(ServiceException):
    code = "quota_exceeded"

class NoInventory(ServiceException):
    code = "no_inventory"

class InvalidPrice(ServiceException):
    code = "invalid_price"

class GatewayError(ServiceException):
    """Raised if the billing provider is unreachable or rejects a request."""
    code = "gateway_error"

class PersistenceError(ServiceException):
    code = "persistence_error"

class PlanUnchanged(ServiceException):
    code = "plan_unchanged"

class MembershipNotFound(ServiceException):
    code = "membership_not_found"

class ChargeDeclined(ServiceException):
    code = "charge_declined"

class InvalidWebhook(ServiceException):
    """Raised if a billing webhook fails signature verification or is malformed."""
    code = "invalid_webhook"
