# Copyright (C) 2007 Giampaolo Rodola' <g.rodola@gmail.com>.
# Use of this source code is governed by MIT license that can be
# found in the LICENSE file.

import contextlib
import functools
import logging
import os
import shutil
import socket
import stat
import sys
import tempfile
import threading
import time
import unittest
import warnings

from ftpserverlib.authorizers import BasicServerDriver
from ftpserverlib.authorizers import DummyAuthorizer
from ftpserverlib.drivers import Settings
from ftpserverlib.handlers import FTPHandler
from ftpserverlib.servers import FTPServer
from ftpserverlib.transfer import DataConnection
from ftpserverlib.transfer import PassiveTransfer

HERE = os.path.realpath(os.path.abspath(os.path.dirname(__file__)))
ROOT_DIR = os.path.realpath(os.path.join(HERE, "..", ".."))

PYPY = "__pypy__" in sys.builtin_module_names
OSX = sys.platform.startswith("darwin")
POSIX = os.name == "posix"
WINDOWS = os.name == "nt"

GITHUB_ACTIONS = "GITHUB_ACTIONS" in os.environ or "CIBUILDWHEEL" in os.environ
CI_TESTING = GITHUB_ACTIONS

# Attempt to use IP rather than hostname (test suite will run a lot faster)
try:
    HOST = socket.gethostbyname("localhost")
except OSError:
    HOST = "localhost"

USER = "user"
PASSWD = "12345"
HOME = os.getcwd()
# Use PID to disambiguate file name for parallel testing.
TESTFN_PREFIX = f"ftpsrv-tmp-{os.getpid()}-"
GLOBAL_TIMEOUT = 2
BUFSIZE = 1024

if CI_TESTING:
    GLOBAL_TIMEOUT *= 3


def configure_logging():
    """Set ftpserverlib logger to "WARNING" level."""
    channel = logging.StreamHandler()
    logger = logging.getLogger("ftpserverlib")
    logger.setLevel(logging.WARNING)
    logger.addHandler(channel)


configure_logging()


class FTPServerTestCase(unittest.TestCase):
    """All test classes inherit from this one."""

    def setUp(self):
        super().setUp()
        reset_server_opts()

    def __str__(self):
        # Print a full path representation of the single unit tests
        # being run.
        fqmod = self.__class__.__module__
        if not fqmod.startswith("ftpserverlib."):
            fqmod = "ftpserverlib.test." + fqmod
        return f"{fqmod}.{self.__class__.__name__}.{self._testMethodName}"

    def get_testfn(self, suffix="", dir=None):
        fname = get_testfn(suffix=suffix, dir=dir)
        self.addCleanup(safe_rmpath, fname)
        return fname


def close_client(session):
    """Closes a ftplib.FTP client session."""
    try:
        if session.sock is not None:
            try:
                resp = session.quit()
            except Exception:
                pass
            else:
                # ...just to make sure the server isn't replying to some
                # pending command.
                assert resp.startswith("221"), resp
    finally:
        session.close()


def try_address(host, port=0, family=socket.AF_INET):
    """Try to bind a socket on the given host:port and return True
    if that has been possible."""
    try:
        with contextlib.closing(socket.socket(family)) as sock:
            sock.bind((host, port))
    except (OSError, socket.gaierror):
        return False
    else:
        return True


SUPPORTS_IPV4 = try_address("127.0.0.1")
SUPPORTS_IPV6 = socket.has_ipv6 and try_address("::1", family=socket.AF_INET6)


def get_testfn(suffix="", dir=None):
    """Return an absolute pathname of a file or dir that did not
    exist at the time this call is made. Also schedule it for safe
    deletion at interpreter exit. It's technically racy but probably
    not really due to the time variant.
    """
    if dir is None:
        dir = os.getcwd()
    while True:
        name = tempfile.mktemp(prefix=TESTFN_PREFIX, suffix=suffix, dir=dir)
        if not os.path.exists(name):  # also include dirs
            return os.path.basename(name)


def safe_rmpath(path):
    """Convenience function for removing temporary test files or dirs."""

    def retry_fun(fun):
        # On Windows it could happen that the file or directory has
        # open handles or references preventing the delete operation
        # to succeed immediately, so we retry for a while. See:
        # https://bugs.python.org/issue33240
        stop_at = time.time() + GLOBAL_TIMEOUT
        while time.time() < stop_at:
            try:
                return fun()
            except FileNotFoundError:
                pass
            except OSError as _:
                err = _
                warnings.warn(f"ignoring {err!s}", UserWarning, stacklevel=2)
            time.sleep(0.01)
        raise err

    try:
        st = os.stat(path)
        if stat.S_ISDIR(st.st_mode):
            fun = functools.partial(shutil.rmtree, path)
        else:
            fun = functools.partial(os.remove, path)
        if POSIX:
            fun()
        else:
            retry_fun(fun)
    except FileNotFoundError:
        pass


def touch(name):
    """Create a file and return its name."""
    with open(name, "w") as f:
        return f.name


def disable_log_warning(fun):
    """Temporarily set FTP server's logging level to ERROR."""

    @functools.wraps(fun)
    def wrapper(self, *args, **kwargs):
        logger = logging.getLogger("ftpserverlib")
        level = logger.getEffectiveLevel()
        logger.setLevel(logging.CRITICAL)
        try:
            return fun(self, *args, **kwargs)
        finally:
            logger.setLevel(level)

    return wrapper


def call_until(fun, expr, timeout=GLOBAL_TIMEOUT):
    """Keep calling function for timeout secs and exit if eval()
    expression is True.
    """
    stop_at = time.time() + timeout
    while time.time() < stop_at:
        ret = fun()
        if eval(expr):
            return ret
        time.sleep(0.001)
    raise RuntimeError(f"timed out (ret={ret!r})")


def bind_socket(host=HOST):
    """Return a socket bound to a free port, not listening yet."""
    sock = socket.socket()
    sock.bind((host, 0))
    return sock


def setup_driver(settings=None, certfile=None):
    authorizer = DummyAuthorizer()
    # full perms
    authorizer.add_user(USER, PASSWD, HOME, perm="elradfmw")
    authorizer.add_anonymous(HOME)
    return BasicServerDriver(authorizer, settings, certfile=certfile)


def reset_server_opts():
    # Since all ftpserverlib configurable "options" are class attributes
    # we reset them at module.class level.
    FTPHandler.timeout = 300
    FTPHandler.max_login_attempts = 3
    FTPHandler.max_line_length = 2048
    FTPHandler.encoding = "utf8"
    FTPHandler.unicode_errors = "replace"
    FTPHandler.unauth_cmds = ("USER", "PASS")
    PassiveTransfer.timeout = 30
    PassiveTransfer.permit_foreign_addresses = False
    DataConnection.timeout = 300
    FTPServer.poll_interval = 0.5
    FTPServer.backlog = 100


class FtpdThreadWrapper(threading.Thread):
    """A threaded FTP server used for running tests.
    It wraps FTPServer.serve_forever() into a thread.
    The instance returned can be start()ed and stop()ped.
    """

    server_class = FTPServer
    poll_interval = 0.05
    # Makes the thread stop on interpreter exit.
    daemon = True

    def __init__(self, sock=None, driver=None, settings=None):
        super().__init__(name="test-ftpd")
        if driver is None:
            driver = setup_driver(settings)
        if sock is None:
            sock = bind_socket()
        self.driver = driver
        self.server = self.server_class(driver, sock=sock)
        self.server.poll_interval = self.poll_interval
        self.host, self.port = self.server.address

    def run(self):
        self.server.serve_forever()

    def wait_sessions_gone(self):
        # sessions leave the registry a bit after the client quits
        stop_at = time.time() + GLOBAL_TIMEOUT
        while self.server.get_sessions() and time.time() < stop_at:
            time.sleep(0.01)

    def stop(self):
        self.wait_sessions_gone()
        self.server.shutdown()
        self.join(GLOBAL_TIMEOUT)
        reset_server_opts()
