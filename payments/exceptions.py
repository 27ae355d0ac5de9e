"""Error taxonomy for the payment flow.

Each class carries the HTTP status the views answer with, so handlers can
raise and let ``payments.views`` shape the JSON body.
"""


class PaymentError(Exception):
    status_code = 500

    def __init__(self, message: str = "Internal error", details=None):
        super().__init__(message)
        self.message = message
        self.details = details


class InvalidInput(PaymentError):
    status_code = 400


class MissingFields(InvalidInput):
    def __init__(self, fields: list[str], message: str = "Missing required payment verification fields"):
        super().__init__(message, details={"missing_fields": list(fields)})
        self.fields = list(fields)


class InvalidSignature(PaymentError):
    status_code = 400

    def __init__(self, message: str = "Invalid payment signature", details=None):
        super().__init__(message, details)


class NotFound(PaymentError):
    status_code = 404


class InvalidTransition(PaymentError):
    status_code = 409


class GatewayError(PaymentError):
    status_code = 502

    def __init__(self, message: str, *, http_status: int | None = None, details=None):
        super().__init__(message, details)
        self.http_status = http_status


class PaymentInitiationFailed(GatewayError):
    pass
