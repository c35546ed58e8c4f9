"""Exceptions for the service context."""

from imaginator.contexts.rendering.exceptions import ImaginatorError


class WorkerUnreachableError(ImaginatorError):
    """
    Exception raised when a remote worker cannot be reached.

    Raised for refused or dropped connections and RPC timeouts. The client
    facade reacts by resolving a fresh handle.
    """


class RemoteWorkerError(ImaginatorError):
    """Exception raised for an unexpected error reported by a remote worker."""
