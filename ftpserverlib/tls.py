# Copyright (C) 2007 Giampaolo Rodola' <g.rodola@gmail.com>.
# Use of this source code is governed by MIT license that can be
# found in the LICENSE file.

"""
Blocking socket I/O working the same way on plain sockets and on
pyOpenSSL connections.

pyOpenSSL does not implement socket timeouts: a socket having a timeout
is non-blocking at the OS level, so OpenSSL reports WantReadError /
WantWriteError instead of blocking. These are retried here after a
select() call honouring the socket timeout.
"""

import errno
import select
import socket

from OpenSSL import SSL

from .log import debug
from .utils import is_ssl_sock

__all__ = ["recv", "secure_connection", "sendall", "shutdown"]

_ERRNOS_DISCONNECTED = {
    errno.ECONNRESET,
    errno.ENOTCONN,
    errno.ESHUTDOWN,
    errno.ECONNABORTED,
    errno.EPIPE,
    errno.EBADF,
}
if hasattr(errno, "WSAECONNRESET"):
    _ERRNOS_DISCONNECTED.add(errno.WSAECONNRESET)

# max bytes handed to a single SSL_write()
_SSL_CHUNK = 65536


def _wait(sock, readable):
    timeout = sock.gettimeout()
    if readable:
        r, w, _ = select.select([sock], [], [], timeout)
    else:
        r, w, _ = select.select([], [sock], [], timeout)
    if not r and not w:
        raise socket.timeout("timed out")


def _retry(sock, fun, *args):
    while True:
        try:
            return fun(*args)
        except SSL.WantReadError:
            _wait(sock, readable=True)
        except SSL.WantWriteError:
            _wait(sock, readable=False)


def _is_eof(err):
    errnum, errstr = err.args
    return (
        errnum in _ERRNOS_DISCONNECTED
        or (errnum == -1 and errstr == "Unexpected EOF")
    )


def secure_connection(ssl_context, sock):
    """Wrap sock into a server-side SSL connection and complete the
    handshake. Return the new connection object.
    """
    conn = SSL.Connection(ssl_context, sock)
    conn.set_accept_state()
    try:
        _retry(conn, conn.do_handshake)
    except SSL.SysCallError as err:
        debug(f"call: secure_connection(), err: {err!r}")
        if _is_eof(err):
            # the other side closed the socket before completing
            # the handshake
            raise ConnectionAbortedError(
                errno.ECONNABORTED, "unexpected SSL EOF"
            ) from err
        raise
    return conn


def recv(sock, bufsize):
    """Read up to bufsize bytes; b"" means end of stream."""
    if not is_ssl_sock(sock):
        return sock.recv(bufsize)
    try:
        return _retry(sock, sock.recv, bufsize)
    except SSL.ZeroReturnError:
        debug("call: recv(), err: zero-return")
        return b""
    except SSL.SysCallError as err:
        debug(f"call: recv(), err: {err!r}")
        if _is_eof(err):
            return b""
        raise


def sendall(sock, data):
    if not is_ssl_sock(sock):
        sock.sendall(data)
        return
    view = memoryview(data)
    while view:
        # the same buffer object must be passed again when retrying
        chunk = view[:_SSL_CHUNK].tobytes()
        try:
            sent = _retry(sock, sock.send, chunk)
        except SSL.ZeroReturnError as err:
            raise BrokenPipeError(
                errno.EPIPE, "SSL connection closed"
            ) from err
        except SSL.SysCallError as err:
            debug(f"call: send(), err: {err!r}")
            if _is_eof(err):
                raise BrokenPipeError(
                    errno.EPIPE, "SSL connection closed"
                ) from err
            raise
        view = view[sent:]


def shutdown(sock):
    """Send the SSL close notify alert, if sock is an SSL connection,
    then close the socket.
    """
    if is_ssl_sock(sock):
        # We just want to shutdown() the SSL layer and then close()
        # the connection so we're not interested in a complete SSL
        # shutdown() handshake, so let's pretend we already received
        # a "RECEIVED" shutdown notification from the client.
        try:
            laststate = sock.get_shutdown()
            sock.set_shutdown(laststate | SSL.RECEIVED_SHUTDOWN)
            _retry(sock, sock.shutdown)
        except (SSL.Error, OSError) as err:
            debug(f"call: shutdown(), err: {err!r}")
    try:
        sock.close()
    except OSError as err:
        debug(f"call: close(), err: {err!r}")
