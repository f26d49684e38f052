# Copyright (C) 2007 Giampaolo Rodola' <g.rodola@gmail.com>.
# Use of this source code is governed by MIT license that can be
# found in the LICENSE file.

"""
This module contains the main FTPServer class which listens on a
host:port and dispatches the incoming connections to a handler.

Every accepted connection is served by a separate thread running the
handler's command loop, so handlers and drivers are free to block.
The main thread is only used to accept new connections.

The server keeps a registry of the live sessions, used to limit the
number of simultaneous connections and to drain transfers on
shutdown():

    >>> server = FTPServer(driver)
    >>> threading.Thread(target=server.serve_forever).start()
    >>> ...
    >>> server.shutdown()
"""

import itertools
import logging
import os
import socket
import threading
import time
import traceback

from .drivers import Settings
from .exceptions import TooManyConnections
from .handlers import FTPHandler
from .handlers import build_command_table
from .log import config_logging
from .log import logger

__all__ = ["FTPServer"]


class FTPServer:
    """Creates a socket listening on the address returned by the
    driver settings, dispatching the requests to a <handler>
    (FTPHandler class by default).

    Depending on the type of address specified IPv4 or IPv6 connections
    (or both, depending from the underlying system) will be accepted.

     - (float) poll_interval: how often the accept loop checks whether
       it has to stop and how often shutdown() re-scans the sessions
       (defaults to 0.5 seconds).

     - (int) backlog: the maximum number of queued connections passed
       to listen(). If a connection request arrives when the queue is
       full the client may raise ECONNRESET. Defaults to 100.

     - (int) stop_timeout: the maximum time shutdown() waits for the
       accept loop to notice it has to stop (defaults to 5 seconds).
    """

    handler = FTPHandler
    poll_interval = 0.5
    backlog = 100
    stop_timeout = 5

    def __init__(self, driver, sock=None):
        """Resolve the settings and bind the listening socket.

         - (instance) driver: a ServerDriver instance.

         - (instance) sock: an already bound socket to listen on. When
           given the listen host and port settings are ignored.

        Failing to bind raises OSError.
        """
        self.driver = driver
        self.settings = self.load_settings()
        self.commands = build_command_table(self.handler)
        self.start_time = None
        self._ids = itertools.count(1)
        self._sessions = {}
        self._lock = threading.Lock()
        self._cond = threading.Condition(self._lock)
        self._exit = threading.Event()
        self._stopped = threading.Event()
        self._stopped.set()
        if sock is None:
            sock = self.bind_af_unspecified(
                (self.settings.listen_host, self.settings.listen_port)
            )
        try:
            sock.listen(self.backlog)
        except OSError:
            sock.close()
            raise
        self.socket = sock

    def __repr__(self):
        status = [self.__class__.__module__ + "." + self.__class__.__name__]
        if self.socket.fileno() != -1:
            status.append("addr=%s:%s" % self.address)
        status.append(f"sessions={len(self._sessions)}")
        return "<%s at %#x>" % (" ".join(status), id(self))

    __str__ = __repr__

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.shutdown()

    def load_settings(self):
        """Return the driver settings with zero values replaced by
        the defaults.
        """
        settings = self.driver.get_settings()
        return Settings(
            listen_host=settings.listen_host or "0.0.0.0",
            listen_port=settings.listen_port or 2121,
            public_host=settings.public_host or "",
            max_connections=settings.max_connections or 10000,
            passive_ports=settings.passive_ports or None,
        )

    @staticmethod
    def bind_af_unspecified(addr):
        """Create a socket bound to addr guessing the address family
        from it. Return the socket.
        """
        host, port = addr
        err = "getaddrinfo() returned an empty list"
        info = socket.getaddrinfo(
            host,
            port,
            socket.AF_UNSPEC,
            socket.SOCK_STREAM,
            0,
            socket.AI_PASSIVE,
        )
        for res in info:
            af, socktype, proto, _, sa = res
            sock = None
            try:
                sock = socket.socket(af, socktype, proto)
                if os.name not in ("nt", "cygwin"):
                    sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
                sock.bind(sa)
            except OSError as exc:
                err = exc
                if sock is not None:
                    sock.close()
                continue
            return sock
        if isinstance(err, OSError):
            raise err
        raise OSError(err)

    @property
    def address(self):
        return self.socket.getsockname()[:2]

    # --- main loop

    def _log_start(self):
        if not logging.getLogger("ftpserverlib").handlers:
            # If we get to this point it means the user hasn't
            # configured logger. We want to log by default so
            # we configure logging ourselves so that it will
            # print to stderr.
            config_logging()

        ports = self.settings.passive_ports
        pasv_ports = f"{ports[0]}->{ports[-1]}" if ports else None
        addr = self.address
        logger.info(
            ">>> starting FTP server on %s:%s, pid=%i <<<",
            addr[0],
            addr[1],
            os.getpid(),
        )
        logger.info("handler: %r", self.handler)
        logger.info("masquerade (NAT) address: %s", self.settings.public_host)
        logger.info("passive ports: %s", pasv_ports)
        logger.info("max connections: %s", self.settings.max_connections)

    def serve_forever(self):
        """Accept connections until shutdown() is called, spawning a
        thread for each of them.

        Return normally when stopped by shutdown(). Errors raised by
        accept() are logged and re-raised, stopping the server.
        KeyboardInterrupt and SystemExit trigger a graceful shutdown.
        """
        if self._exit.is_set():
            # shutdown() was called already
            return
        self._stopped.clear()
        self.start_time = time.time()
        try:
            self._log_start()
            self._accept_loop()
        except (KeyboardInterrupt, SystemExit):
            self._stopped.set()
            self.shutdown()
        finally:
            self._stopped.set()

    def _accept_loop(self):
        # accept() can't be interrupted by close() so we wake up every
        # poll_interval seconds to check whether we have to stop
        self.socket.settimeout(self.poll_interval)
        while not self._exit.is_set():
            try:
                sock, addr = self.socket.accept()
            except socket.timeout:
                continue
            except OSError:
                if self._exit.is_set():
                    break
                logger.error(traceback.format_exc())
                raise
            self.handle_accepted(sock, addr)

    def handle_accepted(self, sock, addr):
        """Called when remote client initiates a connection."""
        try:
            handler = self.handler(sock, addr, self, next(self._ids))
            t = threading.Thread(
                target=handler.handle, name=f"ftp-session-{handler.id}"
            )
            t.daemon = True
            t.start()
        except Exception:
            # This is supposed to be an application bug that should
            # be fixed. We do not want to tear down the server though
            # (DoS). We just log the exception, hoping that someone
            # will eventually file a bug.
            logger.error(traceback.format_exc())
            sock.close()

    # --- registry

    def register_arrival(self, session):
        """Add session to the registry. Raise TooManyConnections if the
        limit of simultaneous connections is exceeded; the session is
        left in the registry and the caller is expected to close it.
        """
        with self._lock:
            self._sessions[session.id] = session
            count = len(self._sessions)
        limit = self.settings.max_connections
        if count > limit:
            raise TooManyConnections(
                f"{count} connections exceed the limit of {limit}"
            )

    def register_departure(self, session):
        """Remove session from the registry (it's ok to call this
        more than once).
        """
        with self._cond:
            self._sessions.pop(session.id, None)
            self._cond.notify_all()

    def notify_transfer_closed(self):
        """Called by sessions when their transfer channel gets closed."""
        with self._cond:
            self._cond.notify_all()

    def get_sessions(self):
        """Return a list of the currently registered sessions."""
        with self._lock:
            return list(self._sessions.values())

    def _transfers_closed(self):
        # must be called with the lock held
        return all(x.is_transfer_closed() for x in self._sessions.values())

    # --- shutdown

    def shutdown(self):
        """Stop accepting new connections, wait for every session to
        close its transfer channel, then close the listening socket.
        Control connections are not interrupted.
        """
        self._exit.set()
        logger.info(
            ">>> shutting down FTP server (%s active sessions) <<<",
            len(self._sessions),
        )
        with self._cond:
            while not self._transfers_closed():
                self._cond.wait(self.poll_interval)
        if not self._stopped.wait(self.stop_timeout):
            logger.warning("accept loop didn't stop in %ss", self.stop_timeout)
        self.close()

    def close(self):
        """Close the listening socket."""
        self.socket.close()
