class HarbourError(ValueError):
    """Base class for every validation failure raised by the harbour core."""


class InvalidKeyLength(HarbourError):
    def __init__(self, length: int, expected: int = 32) -> None:
        super().__init__(f"Invalid key length {length}, expected {expected} bytes")
        self.length = length


class KeyAgreementFailed(HarbourError):
    """X25519 produced the all-zero shared secret (low order peer point)."""


class InvalidContext(HarbourError):
    pass


class InvalidSignature(HarbourError):
    pass


class MalformedEncoding(HarbourError):
    pass


class InvalidOperation(HarbourError):
    def __init__(self, operation: int) -> None:
        super().__init__(f"Invalid Safe operation {operation}")
        self.operation = operation


class InvalidAddress(HarbourError):
    pass


class NoRecipients(HarbourError):
    pass


class NoMatchingRecipient(HarbourError):
    pass


class AuthenticationFailed(HarbourError):
    pass


class NonExportableKey(HarbourError):
    pass


class InvalidSessionEncoding(HarbourError):
    pass
