"""Custom exceptions for SSH tunnel wrapper."""


class TunnelError(Exception):
    """Base exception for all SSH tunnel wrapper errors."""

    default_message = "SSH tunnel error."

    def __init__(self, message: str | None = None):
        super().__init__(message or self.default_message)


class ConnectionFailedError(TunnelError):
    """Raised when the SSH process fails to start or exits early."""

    def __init__(self, detail: str = ""):
        self.detail = detail.strip()
        super().__init__(f"SSH connection failed: {self.detail or 'unknown error'}")


class BinaryNotFoundError(ConnectionFailedError):
    """Raised when the ssh binary is not found or not executable."""

    pass


class AuthenticationFailedError(TunnelError):
    """Raised when the SSH server rejects the supplied credentials."""

    default_message = "SSH authentication failed. Check your key file and passphrase."


class PortForwardingFailedError(TunnelError):
    """Raised when a local port cannot be allocated or never becomes ready."""

    default_message = "Failed to establish port forwarding through SSH tunnel."


class TunnelNotEstablishedError(TunnelError):
    """Raised when an operation requires an active tunnel."""

    default_message = "SSH tunnel is not established."


class InvalidKeyPathError(TunnelError):
    """Raised when key material cannot be resolved, read or staged."""

    default_message = (
        "Invalid SSH key path. Please provide a valid path to your private key."
    )
