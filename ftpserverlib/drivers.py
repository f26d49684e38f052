# Copyright (C) 2007 Giampaolo Rodola' <g.rodola@gmail.com>.
# Use of this source code is governed by MIT license that can be
# found in the LICENSE file.

"""
The driver boundary. The server core never touches credentials or
files on its own: it asks a ServerDriver to greet and authenticate
clients, and it hands every filesystem operation of an authenticated
session to the ClientHandlingDriver returned by auth_user().

Implementors subclass ServerDriver and ClientHandlingDriver and
override every method; see authorizers.BasicServerDriver and
filesystems.LocalFilesystem for a working pair.

Every driver method receives a ClientContext, a read-only view on the
session (current path, authenticated user).
"""

import collections

__all__ = [
    "ClientContext",
    "ClientHandlingDriver",
    "FileInfo",
    "ServerDriver",
    "Settings",
]


class Settings:
    """General server settings, as returned by
    ServerDriver.get_settings().

     - (str) listen_host: the interface to listen on
       (defaults to "0.0.0.0").

     - (int) listen_port: the port to listen on (defaults to 2121).

     - (str) public_host: the IP address advertised in PASV replies,
       useful behind NAT (defaults to the control connection local
       address).

     - (int) max_connections: number of maximum simultaneous sessions
       (defaults to 10000).

     - (list) passive_ports: ports to use for passive data channels;
       None means a kernel-assigned port.

    Zero or empty values are replaced by the defaults when the server
    starts.
    """

    def __init__(
        self,
        listen_host="",
        listen_port=0,
        public_host="",
        max_connections=0,
        passive_ports=None,
    ):
        self.listen_host = listen_host
        self.listen_port = listen_port
        self.public_host = public_host
        self.max_connections = max_connections
        self.passive_ports = passive_ports

    def __repr__(self):
        return "<%s(host=%r, port=%r, public_host=%r, max_connections=%r)>" % (
            self.__class__.__name__,
            self.listen_host,
            self.listen_port,
            self.public_host,
            self.max_connections,
        )


# name, size (bytes), mtime (seconds since the epoch), isdir, mode
# (st_mode-like permission bits)
FileInfo = collections.namedtuple(
    "FileInfo", ["name", "size", "mtime", "isdir", "mode"]
)


class ClientContext:
    """Read-only information about a session, passed to drivers."""

    @property
    def path(self):
        """The current working directory of the session."""
        raise NotImplementedError("must be implemented in subclass")

    @property
    def user(self):
        """The user name (authenticated or candidate)."""
        raise NotImplementedError("must be implemented in subclass")


class ServerDriver:
    """Handles authentication and the selection of a
    ClientHandlingDriver for every logged in session.
    """

    def get_settings(self):
        """Return a Settings instance."""
        raise NotImplementedError("must be implemented in subclass")

    def welcome_user(self, cc):
        """Return the message sent along the 220 greeting.
        Raise an exception to refuse the connection; its string is
        sent to the client with a 500 code.
        """
        raise NotImplementedError("must be implemented in subclass")

    def user_left(self, cc):
        """Called when a session ends, even if it never authenticated."""
        raise NotImplementedError("must be implemented in subclass")

    def auth_user(self, cc, user, password):
        """Return a ClientHandlingDriver for the user or raise
        AuthenticationFailed.
        """
        raise NotImplementedError("must be implemented in subclass")

    def get_tls_config(self):
        """Return an OpenSSL.SSL.Context. It is asked for on every
        AUTH command, so it may change between calls (e.g. rotated
        certificates).
        """
        raise NotImplementedError("must be implemented in subclass")


class ClientHandlingDriver:
    """Handles the filesystem access of an authenticated session.
    Paths are absolute "virtual" paths using "/" as separator.

    Methods can raise OSError or FilesystemError; the message ends up
    in a 550 response.
    """

    def change_directory(self, cc, directory):
        raise NotImplementedError("must be implemented in subclass")

    def make_directory(self, cc, directory):
        raise NotImplementedError("must be implemented in subclass")

    def list_files(self, cc):
        """Return a list of FileInfo for the directory cc.path."""
        raise NotImplementedError("must be implemented in subclass")

    def open_file(self, cc, path, mode):
        """Open a file and return a file object. mode is one of
        "rb", "wb", "ab" or "r+b".
        """
        raise NotImplementedError("must be implemented in subclass")

    def delete_file(self, cc, path):
        """Delete a file or a directory."""
        raise NotImplementedError("must be implemented in subclass")

    def get_file_info(self, cc, path):
        """Return a FileInfo for path."""
        raise NotImplementedError("must be implemented in subclass")

    def rename_file(self, cc, src, dst):
        raise NotImplementedError("must be implemented in subclass")

    def can_allocate(self, cc, size):
        """Return True if size bytes can be stored."""
        raise NotImplementedError("must be implemented in subclass")

    def notify_write(self, cc, path):
        """Called after a file has been written."""
        raise NotImplementedError("must be implemented in subclass")
