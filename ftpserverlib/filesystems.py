# Copyright (C) 2007 Giampaolo Rodola' <g.rodola@gmail.com>.
# Use of this source code is governed by MIT license that can be
# found in the LICENSE file.

import errno
import os
import posixpath
import shutil
import stat
import time

from .drivers import ClientHandlingDriver
from .drivers import FileInfo
from .exceptions import FilesystemError
from .log import logger

__all__ = ["LocalFilesystem", "format_list", "format_nlst"]


_months_map = {
    1: "Jan",
    2: "Feb",
    3: "Mar",
    4: "Apr",
    5: "May",
    6: "Jun",
    7: "Jul",
    8: "Aug",
    9: "Sep",
    10: "Oct",
    11: "Nov",
    12: "Dec",
}

# the permission letter required by each open() mode
_open_perms = {"rb": "r", "wb": "w", "r+b": "w", "ab": "a"}


# ===================================================================
# --- base class
# ===================================================================


class LocalFilesystem(ClientHandlingDriver):
    """A ClientHandlingDriver serving a local directory.

    LocalFilesystem distinguishes between "real" filesystem paths and
    "virtual" ftp paths emulating a UNIX chroot jail where the user
    can not escape its home directory (example: real "/home/user"
    path will be seen as "/" by the client).

    Operations are checked against a permission string made of the
    following letters:

    Read permissions:
     - "e" = change directory (CWD, CDUP commands)
     - "l" = list files (LIST, NLST, SIZE, MDTM commands)
     - "r" = retrieve file from the server (RETR command)

    Write permissions:
     - "a" = append data to an existing file (APPE command)
     - "d" = delete file or directory (DELE, RMD commands)
     - "f" = rename file or directory (RNFR, RNTO commands)
     - "m" = create directory (MKD command)
     - "w" = store a file to the server (STOR command)

    FilesystemError exception can be raised from within any of
    the methods below in order to send a customized error string
    to the client.
    """

    def __init__(self, root, perm="elradfmw"):
        """
        - (str) root: the user "real" home directory (e.g. '/home/user')
        - (str) perm: the permissions granted to the user.
        """
        self.root = os.path.realpath(root)
        self.perm = perm

    def __repr__(self):
        return f"<{self.__class__.__name__}(root={self.root!r})>"

    # --- Pathname / conversion utilities

    def ftp2fs(self, ftppath):
        """Translate a "virtual" ftp pathname into equivalent absolute
        "real" filesystem pathname.

        Example (having "/home/user" as root directory):
        >>> ftp2fs("/foo")
        '/home/user/foo'

        Note: directory separators are system dependent.
        """
        # as far as I know, it should always be path traversal safe...
        p = posixpath.normpath("/" + ftppath).lstrip("/")
        if not p or p == ".":
            return self.root
        return os.path.normpath(os.path.join(self.root, *p.split("/")))

    def validpath(self, path):
        """Check whether the path belongs to user's home directory.
        Expected argument is a "real" filesystem pathname.

        If path is a symbolic link it is resolved to check its real
        destination.

        Pathnames escaping from user's root directory are considered
        not valid.
        """
        root = self.root
        path = os.path.realpath(path)
        if not root.endswith(os.sep):
            root += os.sep
        if not path.endswith(os.sep):
            path += os.sep
        return path[0 : len(root)] == root

    def _resolve(self, ftppath, perm):
        if perm not in self.perm:
            raise FilesystemError("Not enough privileges")
        path = self.ftp2fs(ftppath)
        if not self.validpath(path):
            raise FilesystemError(
                f"{ftppath} points to a path which is outside the user's "
                "root directory"
            )
        return path

    # --- ClientHandlingDriver

    def change_directory(self, cc, directory):
        path = self._resolve(directory, "e")
        st = os.stat(path)
        if not stat.S_ISDIR(st.st_mode):
            raise NotADirectoryError(
                errno.ENOTDIR, os.strerror(errno.ENOTDIR), directory
            )
        # make sure we're allowed to enter the directory
        os.scandir(path).close()

    def make_directory(self, cc, directory):
        os.mkdir(self._resolve(directory, "m"))

    def list_files(self, cc):
        """List the content of cc.path. If cc.path is a file, list
        the file alone.
        """
        path = self._resolve(cc.path, "l")
        st = os.stat(path)
        if not stat.S_ISDIR(st.st_mode):
            return [self._info(posixpath.basename(cc.path), st)]
        listing = []
        for basename in sorted(os.listdir(path)):
            try:
                st = os.lstat(os.path.join(path, basename))
            except OSError:
                # the file has gone in the meantime
                continue
            listing.append(self._info(basename, st))
        return listing

    def open_file(self, cc, path, mode):
        """Open a file returning its handler."""
        if mode not in _open_perms:
            raise ValueError(f"invalid mode {mode!r}")
        return open(self._resolve(path, _open_perms[mode]), mode)

    def delete_file(self, cc, path):
        """Remove the specified file or empty directory."""
        fspath = self._resolve(path, "d")
        if fspath == self.root:
            raise FilesystemError("Can't remove root directory")
        if os.path.isdir(fspath) and not os.path.islink(fspath):
            os.rmdir(fspath)
        else:
            os.remove(fspath)

    def get_file_info(self, cc, path):
        fspath = self._resolve(path, "l")
        return self._info(posixpath.basename(path), os.stat(fspath))

    def rename_file(self, cc, src, dst):
        """Rename the specified src file to the dst filename."""
        os.rename(self._resolve(src, "f"), self._resolve(dst, "f"))

    def can_allocate(self, cc, size):
        return shutil.disk_usage(self.root).free >= size

    def notify_write(self, cc, path):
        logger.debug("%s written by %r", path, cc.user)

    @staticmethod
    def _info(name, st):
        return FileInfo(
            name=name,
            size=st.st_size,
            mtime=st.st_mtime,
            isdir=stat.S_ISDIR(st.st_mode),
            mode=st.st_mode,
        )


# ===================================================================
# --- listing utilities
# ===================================================================


def format_list(listing):
    """Return an iterator object that yields the entries of given
    listing (a sequence of FileInfo) emulating the "/bin/ls -lA" UNIX
    command output.

    Ownership is not part of FileInfo so it's printed as "owner" and
    "group", and number of hard links is always "1". Times are GMT.

    This is how output appears to client:

    -rw-rw-rw-   1 owner    group     7045120 Sep 02  3:47 music.mp3
    drwxrwxrwx   1 owner    group           0 Aug 31 18:50 e-books
    -rw-rw-rw-   1 owner    group         380 Sep 02  3:40 module.py
    """
    SIX_MONTHS = 180 * 24 * 60 * 60
    now = time.time()
    for info in listing:
        mode = info.mode
        if not stat.S_IFMT(mode):
            # the driver gave permission bits only
            mode |= stat.S_IFDIR if info.isdir else stat.S_IFREG
        perms = stat.filemode(mode)
        mtime = time.gmtime(info.mtime)
        # if modification time > 6 months shows "month year"
        # else "month hh:mm", as proftpd does
        fmtstr = "%d  %Y" if now - info.mtime > SIX_MONTHS else "%d %H:%M"
        try:
            mtimestr = "%s %s" % (
                _months_map[mtime.tm_mon],
                time.strftime(fmtstr, mtime),
            )
        except ValueError:
            # It could be raised if last mtime happens to be too
            # old (prior to year 1900) in which case we return
            # the current time as last mtime.
            mtime = time.gmtime()
            mtimestr = "%s %s" % (
                _months_map[mtime.tm_mon],
                time.strftime("%d %H:%M", mtime),
            )
        # formatting is matched with proftpd ls output
        yield "%s %3s %-8s %-8s %8s %s %s\r\n" % (
            perms,
            1,
            "owner",
            "group",
            info.size,
            mtimestr,
            info.name,
        )


def format_nlst(listing):
    """Yield the bare names of the entries in listing."""
    for info in listing:
        yield info.name + "\r\n"
