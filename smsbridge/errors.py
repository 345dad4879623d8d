from __future__ import annotations


class SmsBridgeError(RuntimeError):
    pass


class TransportError(SmsBridgeError):
    """Connection, TLS, timeout or HTTP status failure of a transfer."""


class DecodeError(SmsBridgeError):
    def __init__(self, message: str, *, raw: bytes) -> None:
        super().__init__(message)
        self.raw = raw


class ApiError(SmsBridgeError):
    def __init__(self, status: str) -> None:
        super().__init__(f"api error: {status}")
        self.status = status


class PolicyError(SmsBridgeError):
    def __init__(self, *, sender: str, recipient: str) -> None:
        super().__init__(f"Your message was blocked by {recipient}'s privacy settings.")
        self.sender = sender
        self.recipient = recipient
