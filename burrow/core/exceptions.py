"""
Exception hierarchy for Burrow.

Every error raised by the library derives from BurrowError so callers can
catch the whole family at a single seam.
"""

from typing import Optional


class BurrowError(Exception):
    """Base exception class for all Burrow errors"""
    pass


class ConfigurationError(BurrowError):
    """Exception raised for invalid configuration values"""
    pass


class CredentialError(BurrowError):
    """Exception raised when a credential source cannot be resolved"""
    pass


class SSHConnectError(BurrowError):
    """Exception raised when the transport handshake fails"""

    def __init__(self, message: str, address: Optional[str] = None):
        self.address = address
        super().__init__(message)


class AuthenticationError(SSHConnectError):
    """Exception raised when every configured auth method was rejected"""
    pass


class ConnectionClosedError(BurrowError):
    """Exception raised when a primitive is used on a closed connection"""
    pass


class ChannelOpenFailedError(BurrowError):
    """Exception raised when the remote refuses to open a sub-channel"""

    def __init__(self, message: str, network: Optional[str] = None, address: Optional[str] = None):
        self.network = network
        self.address = address
        super().__init__(message)


class ListenerClosedError(BurrowError):
    """Exception raised by accept() on a listener that has been closed"""
    pass


class StreamClosedError(BurrowError):
    """Exception raised when writing to a closed stream"""
    pass


class StreamCopyError(BurrowError):
    """Base class for copy loop failures"""
    pass


class ShortWriteError(StreamCopyError):
    """Exception raised when a sink accepts fewer bytes than it was given"""

    def __init__(self, expected: int, written: int):
        self.expected = expected
        self.written = written
        super().__init__(f"short write: {written} of {expected} bytes")


class InvalidWriteError(StreamCopyError):
    """Exception raised when a sink reports an impossible byte count"""

    def __init__(self, expected: int, reported: object):
        self.expected = expected
        self.reported = reported
        super().__init__(
            f"invalid write result: {reported!r} for {expected} bytes")


class HostTrustError(BurrowError):
    """Base class for host identity rejections"""

    def __init__(self, message: str, hostname: Optional[str] = None):
        self.hostname = hostname
        super().__init__(message)


class NoTrustStoreError(HostTrustError):
    """Exception raised when no known_hosts location is configured"""
    pass


class RevokedHostKeyError(HostTrustError):
    """Exception raised when the presented key is marked @revoked"""
    pass


class UnknownHostError(HostTrustError):
    """Exception raised when the host is not trusted and was not accepted"""
    pass


class HostKeyMismatchError(UnknownHostError):
    """Exception raised when the host is known under a different key"""
    pass


class SessionError(BurrowError):
    """Base class for interactive session failures"""
    pass


class SessionStateError(SessionError):
    """Exception raised when an operation is invalid in the current state"""
    pass


class PtyRequestError(SessionError):
    """Exception raised when the remote rejects the pty request"""
    pass


class EnvRequestError(SessionError):
    """Exception raised when an environment variable cannot be set"""

    def __init__(self, message: str, name: Optional[str] = None):
        self.name = name
        super().__init__(message)
