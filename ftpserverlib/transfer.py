# Copyright (C) 2007 Giampaolo Rodola' <g.rodola@gmail.com>.
# Use of this source code is governed by MIT license that can be
# found in the LICENSE file.

import errno
import random
import socket

from OpenSSL import SSL

from . import tls
from .log import debug
from .log import logger
from .utils import is_ssl_sock

__all__ = ["DataConnection", "PassiveTransfer", "TransferChannel"]


def _unmap_ipv4(ip):
    # An IPv6 socket talking with an IPv4 client sees its address as
    # an IPv4-mapped IPv6 address (e.g. ::ffff:151.12.5.65), see:
    # https://datatracker.ietf.org/doc/html/rfc3493.html#section-3.7
    if ip.startswith("::ffff:"):
        return ip[7:]
    return ip


class TransferChannel:
    """Base class for the secondary (data) connection of a session.

    open() returns a DataConnection or raises; close() must be
    idempotent and safe to call on a channel which was never opened.
    """

    @property
    def opened(self):
        """Whether open() returned a connection which is still in use."""
        return False

    def open(self):
        raise NotImplementedError("must be implemented in subclass")

    def close(self):
        raise NotImplementedError("must be implemented in subclass")


class DataConnection:
    """A bidirectional byte stream over an established data
    connection, either plain or TLS protected.

     - (int) timeout: the maximum time in seconds a transfer may stall
       with no progress (defaults to 300).
    """

    timeout = 300

    def __init__(self, sock, remote_address):
        self.socket = sock
        self.remote_address = remote_address
        self.tot_bytes_sent = 0
        self.tot_bytes_received = 0
        self._closed = False

    def __repr__(self):
        return "<%s(%s:%s, secure=%s)>" % (
            self.__class__.__name__,
            self.remote_address[0],
            self.remote_address[1],
            self.secure,
        )

    @property
    def secure(self):
        return is_ssl_sock(self.socket)

    def read(self, size):
        data = tls.recv(self.socket, size)
        self.tot_bytes_received += len(data)
        return data

    def write(self, data):
        tls.sendall(self.socket, data)
        self.tot_bytes_sent += len(data)

    def close(self):
        if not self._closed:
            self._closed = True
            tls.shutdown(self.socket)


class PassiveTransfer(TransferChannel):
    """Creates a socket listening on a local port and waits for the
    client to connect to it. Used for handling PASV and EPSV commands.

     - (int) timeout: the timeout for a remote client to establish
       connection with the listening socket. Defaults to 30 seconds.

     - (int) backlog: the maximum number of queued connections passed
       to listen(). Defaults to 5.

     - (bool) permit_foreign_addresses: accept data connections coming
       from an IP address different than the control connection one
       (defaults to False, see FTP bounce attacks in RFC-2577).
    """

    timeout = 30
    backlog = 5
    permit_foreign_addresses = False

    def __init__(self, cmd_channel):
        """Bind the listening socket.

        - (instance) cmd_channel: the FTPHandler instance.
        """
        self.cmd_channel = cmd_channel
        self.data_connection = None
        self.socket = None
        local_ip = cmd_channel.socket.getsockname()[0]
        af = cmd_channel.socket.family
        ports = cmd_channel.server.settings.passive_ports
        sock = socket.socket(af, socket.SOCK_STREAM)
        try:
            if not ports:
                # By using 0 as port number value we let kernel choose a
                # free unprivileged random port.
                sock.bind((local_ip, 0))
            else:
                self._bind_in_range(sock, local_ip, list(ports))
            sock.listen(self.backlog)
        except Exception:
            sock.close()
            raise
        self.socket = sock
        ip, port = sock.getsockname()[:2]
        # the (ip, port) pair the client is supposed to connect to
        self.address = (_unmap_ipv4(ip), port)

    def __repr__(self):
        return "<%s(%s:%s)>" % (self.__class__.__name__, *self.address)

    def _bind_in_range(self, sock, local_ip, ports):
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        while ports:
            port = ports.pop(random.randint(0, len(ports) - 1))
            try:
                sock.bind((local_ip, port))
            except PermissionError:
                self.cmd_channel.log(
                    f"ignoring EPERM when bind()ing port {port}",
                    logfun=logger.debug,
                )
            except OSError as err:
                if err.errno != errno.EADDRINUSE:
                    raise
            else:
                return
        # If cannot use one of the ports in the configured range we'll
        # use a kernel-assigned port, and log a message reporting the
        # issue.
        sock.bind((local_ip, 0))
        self.cmd_channel.log(
            "Can't find a valid passive port in the configured range. "
            "A random kernel-assigned port will be used.",
            logfun=logger.warning,
        )

    @property
    def opened(self):
        return self.data_connection is not None

    def open(self):
        """Wait for the client to connect and return a DataConnection.
        The connection gets TLS protected if the session asked for it
        with PROT P.
        """
        if self.data_connection is not None:
            return self.data_connection
        if self.socket is None:
            raise ConnectionAbortedError(
                errno.ECONNABORTED, "transfer channel closed"
            )
        self.socket.settimeout(self.timeout)
        while True:
            sock, addr = self.socket.accept()
            # Check the origin of data connection.  If not expressively
            # configured we drop the incoming data connection if remote
            # IP address does not match the client's IP address.
            if (
                _unmap_ipv4(addr[0]) != _unmap_ipv4(self.cmd_channel.remote_ip)
                and not self.permit_foreign_addresses
            ):
                sock.close()
                self.cmd_channel.log(
                    "Rejected data connection from foreign address "
                    f"{addr[0]}:{addr[1]}.",
                    logfun=logger.warning,
                )
                continue
            break

        # only one connection is accepted per channel
        self.socket.close()
        self.socket = None

        sock.settimeout(DataConnection.timeout)
        if self.cmd_channel.transfer_tls:
            try:
                sock = tls.secure_connection(
                    self.cmd_channel.ssl_context, sock
                )
            except (OSError, SSL.Error):
                sock.close()
                raise
        self.data_connection = DataConnection(sock, addr)
        debug("data connection established", self.data_connection)
        return self.data_connection

    def close(self):
        if self.data_connection is not None:
            self.data_connection.close()
        if self.socket is not None:
            self.socket.close()
            self.socket = None
