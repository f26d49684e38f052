# Copyright (C) 2007 Giampaolo Rodola' <g.rodola@gmail.com>.
# Use of this source code is governed by MIT license that can be
# found in the LICENSE file.

"""An "authorizer" is a class handling authentications and permissions
of the FTP server. It is used by BasicServerDriver for verifying
user's password, getting users home directory and permissions when a
session logs in.

DummyAuthorizer is the base authorizer, providing a platform
independent interface for managing "virtual" FTP users.

BasicServerDriver glues an authorizer and LocalFilesystem together
into a ServerDriver, which is what FTPServer wants:

    >>> authorizer = DummyAuthorizer()
    >>> authorizer.add_user("user", "12345", "/home/user", perm="elradfmw")
    >>> driver = BasicServerDriver(authorizer)
    >>> server = FTPServer(driver)
"""

import os
import warnings

from OpenSSL import SSL

from . import __ver__
from .drivers import ServerDriver
from .drivers import Settings
from .exceptions import AuthenticationFailed
from .exceptions import AuthorizerError
from .filesystems import LocalFilesystem
from .log import logger

__all__ = ["BasicServerDriver", "DummyAuthorizer"]


# ===================================================================
# --- authorizers
# ===================================================================


class DummyAuthorizer:
    """Basic "dummy" authorizer class, suitable for subclassing to
    create your own custom authorizers.

    An "authorizer" is a class handling authentications and permissions
    of the FTP server. It is used for verifying user's password, getting
    users home directory and permissions.

    DummyAuthorizer is the base authorizer, providing a platform
    independent interface for managing "virtual" FTP users. System
    dependent authorizers can by written by subclassing this base
    class and overriding appropriate methods as necessary.
    """

    read_perms = "elr"
    write_perms = "adfmw"

    def __init__(self):
        self.user_table = {}

    def add_user(self, username, password, homedir, perm="elr"):
        """Add a user to the virtual users table.

        AuthorizerError exception is raised on error conditions such
        as invalid permissions, missing home directory or duplicate
        usernames.

        The "perm" argument is a string referencing the user's
        permissions explained below (see LocalFilesystem):

        Read permissions:
         - "e" = change directory (CWD command)
         - "l" = list files (LIST, NLST, SIZE, MDTM commands)
         - "r" = retrieve file from the server (RETR command)

        Write permissions:
         - "a" = append data to an existing file (APPE command)
         - "d" = delete file or directory (DELE, RMD commands)
         - "f" = rename file or directory (RNFR, RNTO commands)
         - "m" = create directory (MKD command)
         - "w" = store a file to the server (STOR command)
        """
        if self.has_user(username):
            raise AuthorizerError(f"user {username!r} already exists")
        if not os.path.isdir(homedir):
            raise AuthorizerError(f"no such directory: {homedir!r}")
        homedir = os.path.realpath(homedir)
        self._check_permissions(username, perm)
        self.user_table[username] = {
            "pwd": str(password),
            "home": homedir,
            "perm": perm,
        }

    def add_anonymous(self, homedir, perm="elr"):
        """Add an anonymous user to the virtual users table.

        AuthorizerError exception is raised on error conditions such
        as invalid permissions, missing home directory, or duplicate
        usernames.

        Note that any password is accepted for the anonymous user.
        """
        self.add_user("anonymous", "", homedir, perm=perm)

    def remove_user(self, username):
        """Remove a user from the virtual users table."""
        del self.user_table[username]

    def validate_authentication(self, username, password, cc):
        """Raises AuthenticationFailed if supplied username and
        password don't match the stored credentials, else return
        None.
        """
        msg = "Authentication failed."
        if not self.has_user(username):
            if username == "anonymous":
                msg = "Anonymous access not allowed."
            raise AuthenticationFailed(msg)
        if username != "anonymous":
            if self.user_table[username]["pwd"] != password:
                raise AuthenticationFailed(msg)

    def get_home_dir(self, username):
        """Return the user's home directory."""
        return self.user_table[username]["home"]

    def has_user(self, username):
        """Whether the username exists in the virtual users table."""
        return username in self.user_table

    def get_perms(self, username):
        """Return current user permissions."""
        return self.user_table[username]["perm"]

    def has_perm(self, username, perm):
        """Whether the user has been granted the perm letter."""
        return perm in self.get_perms(username)

    def _check_permissions(self, username, perm):
        warned = 0
        for p in perm:
            if p not in self.read_perms + self.write_perms:
                raise AuthorizerError(f"no such permission {p!r}")
            if (
                username == "anonymous"
                and p in self.write_perms
                and not warned
            ):
                warnings.warn(
                    "write permissions assigned to anonymous user.",
                    RuntimeWarning,
                    stacklevel=2,
                )
                warned = 1


# ===================================================================
# --- server driver
# ===================================================================


class BasicServerDriver(ServerDriver):
    """A ServerDriver authenticating users against an authorizer and
    serving their home directory through LocalFilesystem.

     - (str) banner: the string sent when client connects.

     - (instance) filesystem: the ClientHandlingDriver class
       instantiated on login with the user's home directory and
       permissions (defaults to LocalFilesystem).

     - (str) certfile: the path to the file which contains a
       certificate to be used to identify the local side of the
       connection. This must always be specified in order to
       support AUTH.

     - (str) keyfile: the path to the file containing the private
       RSA key; can be omitted if certfile already contains the
       private key (defaults: None).

     - (int) ssl_protocol: the desired SSL protocol version to use.
       This defaults to SSL.TLS_SERVER_METHOD, which is the most
       flexible one.

     - (int) ssl_options: specific OpenSSL options. These default to:
       SSL.OP_NO_SSLv2 | SSL.OP_NO_SSLv3 | SSL.OP_NO_COMPRESSION
       which are all considered insecure features.
       Can be set to None in order to improve compatibility with
       older (insecure) FTP clients.
    """

    banner = f"ftpserverlib {__ver__} ready."
    filesystem = LocalFilesystem
    ssl_protocol = SSL.TLS_SERVER_METHOD
    ssl_options = SSL.OP_NO_SSLv2 | SSL.OP_NO_SSLv3
    if hasattr(SSL, "OP_NO_COMPRESSION"):
        ssl_options |= SSL.OP_NO_COMPRESSION

    def __init__(self, authorizer, settings=None, certfile=None, keyfile=None):
        self.authorizer = authorizer
        self.settings = settings if settings is not None else Settings()
        self.certfile = certfile
        self.keyfile = keyfile
        self.ssl_context = None

    def get_settings(self):
        return self.settings

    def welcome_user(self, cc):
        return self.banner

    def user_left(self, cc):
        logger.debug("user %r left", cc.user)

    def auth_user(self, cc, user, password):
        self.authorizer.validate_authentication(user, password, cc)
        home = self.authorizer.get_home_dir(user)
        return self.filesystem(home, self.authorizer.get_perms(user))

    def get_tls_config(self):
        if self.ssl_context is None:
            if self.certfile is None:
                raise ValueError("at least certfile must be specified")
            keyfile = self.keyfile or self.certfile
            for file in (self.certfile, keyfile):
                if not os.path.isfile(file):
                    msg = f"{file!r} does not exist"
                    raise FileNotFoundError(msg)

            ctx = SSL.Context(self.ssl_protocol)
            ctx.use_certificate_chain_file(self.certfile)
            ctx.use_privatekey_file(keyfile)
            if self.ssl_options:
                ctx.set_options(self.ssl_options)
            self.ssl_context = ctx
        return self.ssl_context
