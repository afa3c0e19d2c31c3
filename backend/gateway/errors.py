class GatewayError(Exception):
    """Base error carrying the HTTP status the boundary should answer with."""

    status_code = 500

    def __init__(self, message: str = ""):
        super().__init__(message or self.__class__.__name__)
        self.message = message or self.__class__.__name__


class ValidationError(GatewayError):
    status_code = 400


class InvalidNumberError(GatewayError):
    status_code = 400


class UnauthorizedError(GatewayError):
    status_code = 403


class NotReadyError(GatewayError):
    status_code = 503

    def __init__(self, message: str = "WhatsApp client is not ready yet, wait for READY status"):
        super().__init__(message)


class StoreError(GatewayError):
    status_code = 500


class TransportError(GatewayError):
    status_code = 500
