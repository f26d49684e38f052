# Copyright (C) 2007 Giampaolo Rodola' <g.rodola@gmail.com>.
# Use of this source code is governed by MIT license that can be
# found in the LICENSE file.

__all__ = [
    "AuthenticationFailed",
    "AuthorizerError",
    "FilesystemError",
    "NoTransferChannel",
    "TooManyConnections",
]


class AuthorizerError(Exception):
    """Base class for authorizer exceptions."""


class AuthenticationFailed(Exception):
    """Exception raised when authentication fails for any reason."""


class FilesystemError(Exception):
    """Custom class for filesystem-related exceptions.
    You can raise this from a ClientHandlingDriver subclass in order
    to send a customized error string to the client.
    """


class TooManyConnections(Exception):
    """Raised by FTPServer.register_arrival() when the registry holds
    more sessions than the configured maximum.
    """


class NoTransferChannel(Exception):
    """Raised when a data transfer is requested but no PASV / EPSV
    command declared a transfer channel first.
    """


class _ConnectionClosed(Exception):
    """Raised when the control connection can no longer be used."""
