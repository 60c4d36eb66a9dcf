class X402GateError(Exception):
    """Base error for the payment gate."""


class GateConfigurationError(X402GateError):
    """Raised when the gate settings are incomplete or invalid."""


class MalformedPaymentError(X402GateError):
    """Raised when a payment proof cannot be parsed."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class AlreadyConsumed(X402GateError):
    """Raised by the replay guard when a nonce was recorded before."""

    def __init__(self, nonce: str):
        super().__init__(f'Nonce already consumed: {nonce}')
        self.nonce = nonce
