# Copyright (C) 2007 Giampaolo Rodola' <g.rodola@gmail.com>.
# Use of this source code is governed by MIT license that can be
# found in the LICENSE file.

import io
import logging
import posixpath
import socket
import time
import traceback
import types

from OpenSSL import SSL

from . import tls
from .drivers import ClientContext
from .exceptions import AuthenticationFailed
from .exceptions import FilesystemError
from .exceptions import NoTransferChannel
from .exceptions import _ConnectionClosed
from .filesystems import format_list
from .filesystems import format_nlst
from .log import debug
from .log import logger
from .transfer import PassiveTransfer
from .utils import is_ssl_sock
from .utils import strerror

__all__ = ["FTPHandler", "build_command_table", "parse_line", "proto_cmds"]


# "arg": True if an argument is required, False if none is expected,
#        None if it is optional
proto_cmds = {
    "ALLO": dict(arg=True),
    "APPE": dict(arg=True),
    "AUTH": dict(arg=True),
    "CDUP": dict(arg=False),
    "CWD": dict(arg=None),
    "DELE": dict(arg=True),
    "EPSV": dict(arg=None),
    "FEAT": dict(arg=False),
    "LIST": dict(arg=None),
    "MDTM": dict(arg=True),
    "MKD": dict(arg=True),
    "NLST": dict(arg=None),
    "NOOP": dict(arg=False),
    "OPTS": dict(arg=True),
    "PASS": dict(arg=None),
    "PASV": dict(arg=False),
    "PBSZ": dict(arg=True),
    "PROT": dict(arg=True),
    "PWD": dict(arg=False),
    "QUIT": dict(arg=False),
    "REST": dict(arg=True),
    "RETR": dict(arg=True),
    "RMD": dict(arg=True),
    "RNFR": dict(arg=True),
    "RNTO": dict(arg=True),
    "SIZE": dict(arg=True),
    "STOR": dict(arg=True),
    "SYST": dict(arg=False),
    "TYPE": dict(arg=True),
    "USER": dict(arg=True),
}


def build_command_table(handler_class):
    """Return a read-only mapping from command verb to the unbound
    ftp_* method of handler_class implementing it.
    """
    return types.MappingProxyType(
        {cmd: getattr(handler_class, "ftp_" + cmd) for cmd in proto_cmds}
    )


def parse_line(line):
    """Split a command line into an (upper-cased verb, argument) pair.

    >>> parse_line("retr my file.txt\\r\\n")
    ('RETR', 'my file.txt')
    """
    line = line.strip("\r\n")
    cmd, _, arg = line.partition(" ")
    return cmd.upper(), arg.strip()


class _PathContext(ClientContext):
    """A ClientContext pointing to a path different than the session
    current directory (e.g. "LIST /some/dir").
    """

    def __init__(self, cmd_channel, path):
        self._cmd_channel = cmd_channel
        self._path = path

    @property
    def path(self):
        return self._path

    @property
    def user(self):
        return self._cmd_channel.user


class FTPHandler(ClientContext):
    """Implements the FTP server Protocol Interpreter (see RFC-959),
    handling commands received from the client on the control channel.

    One instance is created by FTPServer for every accepted connection
    and handle() runs in its own thread until the client quits or
    the connection drops. Commands are executed one at a time: the
    next line is read only after the previous command replied.

    The handler also acts as the ClientContext handed to the drivers.

    Configurable attributes (override them in a subclass):

     - (int) timeout: the timeout which is the maximum time a remote
       client may spend between FTP commands. If the timeout triggers,
       the remote client will be kicked off.  Defaults to 300 seconds.

     - (int) max_login_attempts: the maximum number of wrong
       authentications before disconnecting the client (default 3).

     - (int) max_line_length: longer command lines are rejected with
       500 (default 2048).

     - (str) encoding: the encoding used for commands and file names
       (default "utf8").

     - (str) unicode_errors: the error handler passed to .encode() and
       .decode() (default "replace").

     - (tuple) unauth_cmds: the commands accepted before login.

     - (int) buffer_size: the size of the chunks moved over the data
       channel (default 65536).

     - (list) log_cmds_list: commands logged when completed.
    """

    # these are overridable defaults
    timeout = 300
    max_login_attempts = 3
    max_line_length = 2048
    encoding = "utf8"
    unicode_errors = "replace"
    buffer_size = 65536
    passive_transfer = PassiveTransfer
    unauth_cmds = ("USER", "PASS")
    log_cmds_list = [
        "DELE",
        "RNFR",
        "RNTO",
        "MKD",
        "RMD",
        "CWD",
        "CDUP",
        "REST",
        "RETR",
        "APPE",
        "STOR",
        "ALLO",
    ]

    def __init__(self, sock, addr, server, id):
        """Initialize the command channel.

        - (instance) sock: the socket object instance of the newly
           established connection.
        - (tuple) addr: the remote address.
        - (instance) server: the FTPServer instance which accepted the
           connection.
        - (int) id: the session id assigned by the server.
        """
        self.socket = sock
        self.server = server
        self.id = id
        self.commands = server.commands
        self.remote_ip, self.remote_port = addr[:2]
        self.connected_at = time.time()

        # session attributes (account)
        self.fs = None
        self.authenticated = False
        self.username = ""
        self.attempted_logins = 0
        self.command = ""
        self.param = ""
        self._path = "/"
        self._current_type = "a"
        self._rnfr = None
        self._restart_position = 0

        # TLS
        self.ssl_context = None
        self._pbsz = None
        self._prot = False

        # dtp attributes
        self.transfer = None

        self._in_buffer = bytearray()
        self._discarding = False
        self._quit = False
        self._closed = False
        if self.timeout:
            sock.settimeout(self.timeout)

    def __repr__(self):
        status = [self.__class__.__module__ + "." + self.__class__.__name__]
        status.append(f"id={self.id}")
        status.append(f"addr={self.remote_ip}:{self.remote_port}")
        if self.username:
            status.append(f"user={self.username!r}")
        return "<%s at %#x>" % (" ".join(status), id(self))

    __str__ = __repr__

    # --- ClientContext

    @property
    def path(self):
        return self._path

    @property
    def user(self):
        return self.username

    @property
    def remote_address(self):
        return (self.remote_ip, self.remote_port)

    @property
    def transfer_tls(self):
        """Whether the next transfer channel must be TLS protected."""
        return self._prot

    # --- session lifecycle

    def handle(self):
        """Serve the session: admission, greeting, then the command
        loop. Always deregisters from the server when done.
        """
        try:
            try:
                self.server.register_arrival(self)
            except Exception as err:
                self.handle_max_cons(err)
                return
            try:
                self.handle_session()
            finally:
                self.on_user_left()
        except _ConnectionClosed:
            pass
        finally:
            self.close()
            self.server.register_departure(self)

    def handle_max_cons(self, err):
        """Called when limit for maximum number of connections is
        reached.
        """
        msg = "Too many connections. Service temporarily unavailable."
        self.log(f"{msg} ({err})", logfun=logger.warning)
        self.respond("421 " + msg)

    def on_user_left(self):
        try:
            self.server.driver.user_left(self)
        except Exception:
            logger.error(traceback.format_exc())

    def handle_session(self):
        """Send the greeting then process commands until the client
        quits or disconnects.
        """
        try:
            msg = self.server.driver.welcome_user(self)
        except Exception as err:
            self.log(f"connection refused by driver: {err}")
            self.respond(f"500 {err}")
            return
        self.log("FTP session opened (connect)")
        self.respond(f"220 {msg}")
        while not self._quit:
            line = self.read_line()
            if line is None:
                break
            cmd, arg = parse_line(line)
            self.command = cmd
            self.param = arg
            if cmd == "PASS":
                self.logline(f"<- {cmd} {'*' * 6}")
            else:
                self.logline(f"<- {line.strip()}")
            self.process_command(cmd, arg)

    def read_line(self):
        r"""Return the next line received on the control connection,
        terminator included, or None on disconnection.
        """
        while True:
            idx = self._in_buffer.find(b"\n")
            if idx != -1:
                raw = bytes(self._in_buffer[: idx + 1])
                del self._in_buffer[: idx + 1]
                if self._discarding:
                    self._discarding = False
                    continue
                if len(raw) > self.max_line_length:
                    self.cmd_too_long()
                    continue
                return raw.decode(self.encoding, self.unicode_errors)
            if len(self._in_buffer) > self.max_line_length:
                # flush buffer if it gets too long (possible DoS attacks)
                self._in_buffer.clear()
                if not self._discarding:
                    self._discarding = True
                    self.cmd_too_long()
            try:
                chunk = tls.recv(self.socket, 8192)
            except socket.timeout:
                self.handle_timeout()
                return None
            except (OSError, SSL.Error) as err:
                debug(f"call: read_line(), err: {err!r}", self)
                return None
            if not chunk:
                debug("control connection closed by client", self)
                return None
            self._in_buffer.extend(chunk)

    def handle_timeout(self):
        """Called when client does not send any command within the
        time specified in <timeout> attribute.
        """
        msg = "Control connection timed out."
        self.respond("421 " + msg)
        self.log(msg)

    def process_command(self, cmd, arg):
        """Gate, dispatch and execute a single command. Exceptions
        raised by the handler are logged and reported with 451.
        """
        if not self.authenticated and cmd not in self.unauth_cmds:
            self.respond("530 Please login with USER and PASS.")
            return

        # RNTO must immediately follow RNFR
        if cmd != "RNTO":
            self._rnfr = None

        method = self.commands.get(cmd)
        if method is None:
            self.cmd_not_understood(cmd)
            return

        if not arg and proto_cmds[cmd]["arg"]:
            self.respond("501 Syntax error: command needs an argument.")
            return
        if arg and proto_cmds[cmd]["arg"] is False:
            self.respond(
                "501 Syntax error: command does not accept arguments."
            )
            return

        try:
            method(self, arg)
        except _ConnectionClosed:
            raise
        except Exception:
            logger.error(traceback.format_exc())
            msg = "Requested action aborted: local error in processing."
            if self.transfer is not None and self.transfer.opened:
                self.transfer_close(451, msg)
            else:
                self.respond("451 " + msg)

    def close(self):
        """Close the transfer channel and the control connection."""
        if self._closed:
            return
        self._closed = True
        if self.transfer is not None:
            self.transfer.close()
            self.transfer = None
            self.server.notify_transfer_closed()
        tls.shutdown(self.socket)
        self.log("FTP session closed (disconnect).")

    # --- utility

    def respond(self, resp, logfun=logger.debug):
        """Send a response to the client using the command channel."""
        self.logline(f"-> {resp}", logfun=logfun)
        data = (resp + "\r\n").encode(self.encoding, self.unicode_errors)
        try:
            tls.sendall(self.socket, data)
        except (OSError, SSL.Error) as err:
            debug(f"call: respond(), err: {err!r}", self)
            raise _ConnectionClosed from err

    def cmd_not_understood(self, cmd):
        self.respond(f'550 Command "{cmd}" not handled.')

    def cmd_too_long(self):
        self.respond("500 Command too long.")
        self.log(
            "Command received exceeded buffer limit of "
            f"{self.max_line_length}."
        )

    def log(self, msg, logfun=logger.info):
        """Log a message, including additional identifying session data."""
        prefix = f"{self.remote_ip}:{self.remote_port}-[{self.username}]"
        logfun(f"{prefix} {msg}")

    def logline(self, msg, logfun=logger.debug):
        """Log a line including additional identifying session data.
        By default this is disabled unless logging level == DEBUG.
        """
        if logger.getEffectiveLevel() <= logging.DEBUG:
            prefix = f"{self.remote_ip}:{self.remote_port}-[{self.username}]"
            logfun(f"{prefix} {msg}")

    def log_cmd(self, cmd, arg, respcode, respstr):
        """Log commands and responses in a standardized format."""
        if cmd in self.log_cmds_list:
            line = f"{cmd} {arg} {respcode} {respstr}"
            self.log(line.strip())

    def ftpnorm(self, ftppath):
        """Normalize a "virtual" ftp pathname (typically the raw string
        coming from client) depending on the current working directory.

        Example (having "/foo" as current working directory):
        >>> ftpnorm('bar')
        '/foo/bar'

        Pathname returned is always absolutized and can not climb
        above "/".
        """
        p = posixpath.normpath(posixpath.join(self._path, ftppath))
        # collapse redundant separators at the beginning of the string
        # (posixpath keeps a leading "//")
        while p[:2] == "//":
            p = p[1:]
        if not p.startswith("/"):
            p = "/"
        return p

    def _reply_fs_error(self, cmd, arg, err):
        why = strerror(err)
        self.respond(f"550 {why}.")
        self.log_cmd(cmd, arg, 550, why)

    # --- transfer channel

    def transfer_open(self):
        """Reply 150 and open the transfer channel declared by a
        previous PASV/EPSV, returning a DataConnection.

        Raise NoTransferChannel (after replying 550) if none was
        declared, or the underlying error if the channel can't be
        opened.
        """
        if self.transfer is None:
            self.respond("550 No passive connection declared.")
            raise NoTransferChannel("no passive connection declared")
        self.respond("150 Using transfer connection.")
        conn = self.transfer.open()
        debug(f"transfer connection opened to {conn.remote_address}", self)
        return conn

    def transfer_close(self, code=226, msg="Closing transfer connection."):
        """Reply and close the transfer channel, if any. The reply
        defaults to 226 but an error reply can be given instead when
        the data phase failed.
        """
        if self.transfer is None:
            return
        try:
            self.respond(f"{code} {msg}")
        finally:
            self.transfer.close()
            self.transfer = None
            self.server.notify_transfer_closed()
            debug("transfer connection closed", self)

    def is_transfer_closed(self):
        return self.transfer is None

    def _open_data_connection(self):
        try:
            return self.transfer_open()
        except NoTransferChannel:
            return None
        except (OSError, SSL.Error) as err:
            self.log(f"can't open data connection: {strerror(err)}")
            self.transfer_close(425, "Can't open data connection.")
            return None

    def push_dtp_data(self, chunks, cmd, arg):
        """Send an iterable of byte strings over a newly opened
        transfer channel. Return True on success; on failure the
        channel is closed with an error reply.
        """
        conn = self._open_data_connection()
        if conn is None:
            return False
        try:
            for chunk in chunks:
                conn.write(chunk)
        except (OSError, SSL.Error) as err:
            self.transfer_close(426, "Connection closed; transfer aborted.")
            self.log_cmd(cmd, arg, 426, strerror(err))
            return False
        return True

    def receive_dtp_data(self, file, cmd, arg):
        """Write everything received over a newly opened transfer
        channel into file. Same return value as push_dtp_data().
        """
        conn = self._open_data_connection()
        if conn is None:
            return False
        try:
            while True:
                chunk = conn.read(self.buffer_size)
                if not chunk:
                    break
                file.write(chunk)
        except (OSError, SSL.Error) as err:
            self.transfer_close(426, "Connection closed; transfer aborted.")
            self.log_cmd(cmd, arg, 426, strerror(err))
            return False
        return True

    # --- connection

    def _open_passive(self, extmode):
        # close existing transfer channel, if any
        if self.transfer is not None:
            self.transfer.close()
            self.transfer = None
            self.server.notify_transfer_closed()
        try:
            self.transfer = self.passive_transfer(self)
        except OSError as err:
            why = strerror(err)
            self.respond(f"425 Can't open passive connection: {why}.")
            return
        ip, port = self.transfer.address
        if extmode:
            self.respond(
                f"229 Entering extended passive mode (|||{int(port)}|)."
            )
            return
        ip = self.server.settings.public_host or ip
        # The format of 227 response in not standardized.
        # This is the most expected:
        self.respond(
            "227 Entering passive mode (%s,%d,%d)."
            % (ip.replace(".", ","), port // 256, port % 256)
        )

    def ftp_PASV(self, line):
        """Start a passive data channel."""
        if self.socket.family != socket.AF_INET:
            self.respond(
                "425 You cannot use PASV on IPv6 connections. "
                "Use EPSV instead."
            )
        else:
            self._open_passive(extmode=False)

    def ftp_EPSV(self, line):
        """Start a passive data channel by using IPv4 or IPv6 as
        defined in RFC-2428.
        """
        self._open_passive(extmode=True)

    def ftp_QUIT(self, line):
        """Quit the current session."""
        self.respond("221 Goodbye.")
        self._quit = True

    def ftp_TYPE(self, line):
        """Set current type data type to binary/ascii."""
        type = line.upper().replace(" ", "")
        if type in ("A", "AN", "L7"):
            self.respond("200 Type set to: ASCII.")
            self._current_type = "a"
        elif type in ("I", "L8"):
            self.respond("200 Type set to: Binary.")
            self._current_type = "i"
        else:
            self.respond(f'504 Unsupported type "{line}".')

    # --- data transferring

    def _list(self, line, formatter, cmd):
        if line and not line.startswith("-"):
            # otherwise we assume the arg is a directory name
            cc = _PathContext(self, self.ftpnorm(line))
        else:
            # some FTP clients (like Konqueror or Nautilus) erroneously
            # issue /bin/ls-like LIST formats (e.g. "LIST -l", "LIST -al"
            # and so on...) instead of passing a directory as the
            # argument; we list the current working directory
            cc = self
        try:
            listing = self.fs.list_files(cc)
        except (OSError, FilesystemError) as err:
            self._reply_fs_error(cmd, cc.path, err)
            return
        chunks = (
            x.encode(self.encoding, self.unicode_errors)
            for x in formatter(listing)
        )
        if self.push_dtp_data(chunks, cmd, cc.path):
            self.transfer_close()

    def ftp_LIST(self, line):
        """Return a list of files in the specified directory to the
        client. Defaults to the current working directory.
        """
        self._list(line, format_list, "LIST")

    def ftp_NLST(self, line):
        """Return a list of files in the specified directory in a
        compact form to the client.
        """
        self._list(line, format_nlst, "NLST")

    def _pop_restart_position(self):
        rest_pos, self._restart_position = self._restart_position, 0
        return rest_pos

    def ftp_RETR(self, file):
        """Retrieve the specified file (transfer from the server to the
        client).
        """
        path = self.ftpnorm(file)
        rest_pos = self._pop_restart_position()
        try:
            fd = self.fs.open_file(self, path, "rb")
        except (OSError, FilesystemError) as err:
            self._reply_fs_error("RETR", path, err)
            return

        with fd:
            if rest_pos:
                # Make sure that the requested offset is valid (within
                # the size of the file being resumed).
                # According to RFC-1123 a 554 reply may result in case
                # that the existing file cannot be repositioned as
                # specified in the REST.
                fsize = fd.seek(0, io.SEEK_END)
                if rest_pos > fsize:
                    why = "Invalid REST parameter"
                    self.respond(f"554 {why}.")
                    self.log_cmd("RETR", path, 554, why)
                    return
                fd.seek(rest_pos)
            chunks = iter(lambda: fd.read(self.buffer_size), b"")
            if not self.push_dtp_data(chunks, "RETR", path):
                return
        self.transfer_close()
        self.log_cmd("RETR", path, 226, "Transfer complete.")

    def ftp_STOR(self, file, mode="w"):
        """Store a file (transfer from the client to the server)."""
        cmd = "APPE" if mode == "a" else "STOR"
        path = self.ftpnorm(file)
        rest_pos = self._pop_restart_position()
        # A resume could occur in case of APPE or REST commands.
        # In that case we have to open file object in different ways:
        # STOR: mode = 'w'
        # APPE: mode = 'a'
        # REST + STOR: mode = 'r+' (to permit seeking on file object)
        if mode == "a":
            mode = "ab"
        elif rest_pos:
            mode = "r+b"
        else:
            mode = "wb"
        try:
            fd = self.fs.open_file(self, path, mode)
        except (OSError, FilesystemError) as err:
            self._reply_fs_error(cmd, path, err)
            return

        with fd:
            if mode == "r+b":
                fsize = fd.seek(0, io.SEEK_END)
                if rest_pos > fsize:
                    why = "Invalid REST parameter"
                    self.respond(f"554 {why}.")
                    self.log_cmd(cmd, path, 554, why)
                    return
                fd.seek(rest_pos)
            if not self.receive_dtp_data(fd, cmd, path):
                return

        try:
            self.fs.notify_write(self, path)
        except (OSError, FilesystemError) as err:
            self.log(f"notify_write({path!r}) failed: {strerror(err)}")
        self.transfer_close()
        self.log_cmd(cmd, path, 226, "Transfer complete.")

    def ftp_APPE(self, file):
        """Append data to an existing file on the server."""
        self.ftp_STOR(file, mode="a")

    def ftp_REST(self, line):
        """Restart a file transfer from a previous mark."""
        try:
            marker = int(line)
            if marker < 0:
                raise ValueError
        except (ValueError, OverflowError):
            self.respond("501 Invalid parameter.")
        else:
            self.respond(f"350 Restarting at position {marker}.")
            self.log_cmd("REST", line, 350, "Restarting.")
            self._restart_position = marker

    def ftp_ALLO(self, line):
        """Ask the driver whether the given amount of bytes can be
        stored.
        """
        try:
            size = int(line)
            if size < 0:
                raise ValueError
        except (ValueError, OverflowError):
            self.respond("501 Invalid parameter.")
            return
        try:
            ok = self.fs.can_allocate(self, size)
        except (OSError, FilesystemError) as err:
            self._reply_fs_error("ALLO", line, err)
            return
        if ok:
            self.respond("202 OK, we have the free space.")
        else:
            why = "NOT OK, we don't have the free space"
            self.respond(f"550 {why}.")
            self.log_cmd("ALLO", line, 550, why)

    # --- authentication

    def ftp_USER(self, line):
        """Set the username for the current session."""
        if not self.authenticated:
            self.username = line
        else:
            # the session stays bound to the account which logged in
            self.log(f'USER "{line}" ignored: already logged in.')
        self.respond("331 Username ok, send password.")

    def ftp_PASS(self, line):
        """Check username's password against the server driver."""
        if self.authenticated:
            self.respond("503 User already authenticated.")
            return
        if not self.username:
            self.respond("503 Login with USER first.")
            return

        try:
            fs = self.server.driver.auth_user(self, self.username, line)
        except AuthenticationFailed as err:
            self.handle_auth_failed(str(err))
        else:
            self.handle_auth_success(fs)

    def handle_auth_success(self, fs):
        self.fs = fs
        self.authenticated = True
        self.attempted_logins = 0
        self.respond("230 Login successful.")
        self.log(f"USER '{self.username}' logged in.")

    def handle_auth_failed(self, msg):
        self.attempted_logins += 1
        if self.attempted_logins >= self.max_login_attempts:
            self.respond("530 Maximum login attempts. Disconnecting.")
            self._quit = True
        else:
            self.respond(f"530 {msg or 'Authentication failed.'}")
        self.log(f"USER '{self.username}' failed login: {msg}")
        self.username = ""

    # --- filesystem operations

    def ftp_PWD(self, line):
        """Return the name of the current working directory to the
        client.
        """
        # The 257 response is supposed to include the directory
        # name and in case it contains embedded double-quotes
        # they must be doubled (see RFC-959, chapter 7, appendix 2).
        cwd = self._path.replace('"', '""')
        self.respond(f'257 "{cwd}" is the current directory.')

    def ftp_CWD(self, path):
        """Change the current working directory."""
        path = self.ftpnorm(path or "/")
        try:
            self.fs.change_directory(self, path)
        except (OSError, FilesystemError) as err:
            self._reply_fs_error("CWD", path, err)
        else:
            self._path = path
            cwd = path.replace('"', '""')
            self.respond(f'250 "{cwd}" is the current directory.')
            self.log_cmd("CWD", path, 250, "OK")

    def ftp_CDUP(self, path):
        """Change into the parent directory."""
        self.ftp_CWD("..")

    def ftp_SIZE(self, path):
        """Return size of file in a format suitable for using with
        RESTart as defined in RFC-3659.
        """
        self._stat_file(path, "SIZE", lambda info: str(info.size))

    def ftp_MDTM(self, path):
        """Return last modification time of file to the client as an ISO
        3307 style timestamp (YYYYMMDDHHMMSS) as defined in RFC-3659.
        """
        self._stat_file(
            path,
            "MDTM",
            lambda info: time.strftime(
                "%Y%m%d%H%M%S", time.gmtime(info.mtime)
            ),
        )

    def _stat_file(self, path, cmd, formatter):
        path = self.ftpnorm(path)
        try:
            info = self.fs.get_file_info(self, path)
        except (OSError, FilesystemError) as err:
            self._reply_fs_error(cmd, path, err)
            return
        if info.isdir:
            why = f"{path} is not retrievable"
            self.respond(f"550 {why}.")
            self.log_cmd(cmd, path, 550, why)
            return
        self.respond(f"213 {formatter(info)}")

    def ftp_MKD(self, path):
        """Create the specified directory."""
        path = self.ftpnorm(path)
        try:
            self.fs.make_directory(self, path)
        except (OSError, FilesystemError) as err:
            self._reply_fs_error("MKD", path, err)
        else:
            # The 257 response is supposed to include the directory
            # name and in case it contains embedded double-quotes
            # they must be doubled (see RFC-959, chapter 7, appendix 2).
            line = path.replace('"', '""')
            self.respond(f'257 "{line}" directory created.')
            self.log_cmd("MKD", path, 257, "OK")

    def ftp_RMD(self, path):
        """Remove the specified directory."""
        path = self.ftpnorm(path)
        if path == "/":
            msg = "Can't remove root directory."
            self.respond("550 " + msg)
            self.log_cmd("RMD", path, 550, msg)
            return
        self._delete(path, "RMD", "Directory removed.")

    def ftp_DELE(self, path):
        """Delete the specified file."""
        self._delete(self.ftpnorm(path), "DELE", "File removed.")

    def _delete(self, path, cmd, msg):
        try:
            self.fs.delete_file(self, path)
        except (OSError, FilesystemError) as err:
            self._reply_fs_error(cmd, path, err)
        else:
            self.respond("250 " + msg)
            self.log_cmd(cmd, path, 250, "OK")

    def ftp_RNFR(self, path):
        """Rename the specified (only the source name is specified
        here, see RNTO command).
        """
        self._rnfr = self.ftpnorm(path)
        self.respond("350 Ready for destination name.")
        self.log_cmd("RNFR", self._rnfr, 350, "OK")

    def ftp_RNTO(self, path):
        """Rename file (destination name only, source is specified with
        RNFR).
        """
        if not self._rnfr:
            self.respond("503 Bad sequence of commands: use RNFR first.")
            return
        src, self._rnfr = self._rnfr, None
        dst = self.ftpnorm(path)
        try:
            self.fs.rename_file(self, src, dst)
        except (OSError, FilesystemError) as err:
            self._reply_fs_error("RNTO", f"{src} -> {dst}", err)
        else:
            self.respond("250 Renaming ok.")
            self.log_cmd("RNTO", f"{src} -> {dst}", 250, "OK")

    # --- security (RFC-2228 and RFC-4217)

    def ftp_AUTH(self, line):
        """Set up secure control channel."""
        arg = line.upper()
        if is_ssl_sock(self.socket):
            self.respond("503 Already using TLS.")
        elif arg in ("TLS", "TLS-C", "SSL", "TLS-P"):
            try:
                ssl_context = self.server.driver.get_tls_config()
            except Exception as err:
                self.respond(f"550 Cannot get a TLS config: {err}")
                self.log(f"can't get a TLS config: {err!r}")
                return
            # From RFC-4217: "As the SSL/TLS protocols self-negotiate
            # their levels, there is no need to distinguish between SSL
            # and TLS in the application layer".
            self.respond(f"234 AUTH {arg} successful.")
            # anything received in clear text before the handshake
            # must not be interpreted as commands
            self._in_buffer.clear()
            try:
                self.socket = tls.secure_connection(ssl_context, self.socket)
            except (OSError, SSL.Error) as err:
                # TLS/SSL handshake failure, probably client's fault
                # which used a SSL version different from server's.
                # We can't rely on the control connection anymore so
                # we just disconnect the client.
                self.log(f"SSL handshake failed: {err!r}")
                raise _ConnectionClosed from err
            self.ssl_context = ssl_context
        else:
            self.respond("502 Unrecognized encryption type (use TLS or SSL).")

    def ftp_PBSZ(self, line):
        """Negotiate size of buffer for secure data transfer.
        For TLS/SSL the only valid value for the parameter is '0'.
        Any other value is accepted but ignored.
        """
        if not is_ssl_sock(self.socket):
            self.respond(
                "503 PBSZ not allowed on insecure control connection."
            )
        else:
            self.respond("200 PBSZ=0 successful.")
            self._pbsz = line

    def ftp_PROT(self, line):
        """Setup un/secure data channel."""
        arg = line.upper()
        if not is_ssl_sock(self.socket):
            self.respond(
                "503 PROT not allowed on insecure control connection."
            )
        elif self._pbsz is None:
            self.respond("503 You must issue the PBSZ command prior to PROT.")
        elif arg == "C":
            self.respond("200 Protection set to Clear")
            self._prot = False
        elif arg == "P":
            self.respond("200 Protection set to Private")
            self._prot = True
        elif arg in ("S", "E"):
            self.respond(f"521 PROT {arg} unsupported (use C or P).")
        else:
            self.respond("502 Unrecognized PROT type (use C or P).")

    # --- others

    def ftp_FEAT(self, line):
        """List all new features supported as defined in RFC-2398."""
        features = [
            "AUTH SSL",
            "AUTH TLS",
            "EPSV",
            "MDTM",
            "PBSZ",
            "PROT",
            "REST STREAM",
            "SIZE",
            "TYPE A;I",
            "UTF8",
        ]
        lines = "".join(f" {x}\r\n" for x in features)
        self.respond(f"211-Features supported:\r\n{lines}211 End FEAT.")

    def ftp_OPTS(self, line):
        """Specify options for FTP commands as specified in RFC-2389."""
        if line.upper() in ("UTF8 ON", "UTF8"):
            self.respond("200 OK")
        else:
            self.respond(f'501 Invalid argument "{line}".')

    def ftp_NOOP(self, line):
        """Do nothing."""
        self.respond("200 I successfully done nothin'.")

    def ftp_SYST(self, line):
        """Return system type (always returns UNIX type: L8)."""
        # This command is used to find out the type of operating system
        # at the server.  The reply shall have as its first word one of
        # the system names listed in RFC-943.
        # Since that we always return a "/bin/ls -lA"-like output on
        # LIST we  prefer to respond as if we would on Unix in any case.
        self.respond("215 UNIX Type: L8")

