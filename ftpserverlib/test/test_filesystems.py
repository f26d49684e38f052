# Copyright (C) 2007 Giampaolo Rodola' <g.rodola@gmail.com>.
# Use of this source code is governed by MIT license that can be
# found in the LICENSE file.

import os
import re
import stat
import tempfile
import time
import types

import pytest

from ftpserverlib.drivers import ClientHandlingDriver
from ftpserverlib.drivers import FileInfo
from ftpserverlib.exceptions import FilesystemError
from ftpserverlib.filesystems import LocalFilesystem
from ftpserverlib.filesystems import format_list
from ftpserverlib.filesystems import format_nlst

from . import HOME
from . import POSIX
from . import TESTFN_PREFIX
from . import FTPServerTestCase
from . import safe_rmpath
from . import touch


def cc(path="/"):
    return types.SimpleNamespace(path=path, user="user")


class TestLocalFilesystem(FTPServerTestCase):
    """Test LocalFilesystem class."""

    def setUp(self):
        super().setUp()
        root = tempfile.mkdtemp(prefix=TESTFN_PREFIX, dir=HOME)
        self.root = os.path.realpath(root)
        self.addCleanup(safe_rmpath, self.root)
        self.fs = LocalFilesystem(self.root)

    def join(self, *names):
        return os.path.join(self.root, *names)

    def test_is_client_handling_driver(self):
        assert isinstance(self.fs, ClientHandlingDriver)

    def test_ftp2fs(self):
        ae = self.assertEqual
        fs = self.fs
        join = self.join
        ae(fs.ftp2fs(""), self.root)
        ae(fs.ftp2fs("/"), self.root)
        ae(fs.ftp2fs("."), self.root)
        ae(fs.ftp2fs(".."), self.root)
        ae(fs.ftp2fs("a"), join("a"))
        ae(fs.ftp2fs("/a"), join("a"))
        ae(fs.ftp2fs("/a/"), join("a"))
        ae(fs.ftp2fs("a/.."), self.root)
        ae(fs.ftp2fs("a/b"), join("a", "b"))
        ae(fs.ftp2fs("/a/b"), join("a", "b"))
        ae(fs.ftp2fs("/a/b/.."), join("a"))
        ae(fs.ftp2fs("/a/b/../../.."), self.root)
        ae(fs.ftp2fs("//a"), join("a"))

    def test_validpath(self):
        assert self.fs.validpath(self.root)
        assert self.fs.validpath(self.join("a"))
        assert self.fs.validpath(self.join("a", "b"))
        assert not self.fs.validpath(os.path.dirname(self.root))
        # a sibling sharing the same prefix
        assert not self.fs.validpath(self.root + "x")

    @pytest.mark.skipif(not POSIX, reason="POSIX only")
    def test_validpath_symlink(self):
        outside = tempfile.mkdtemp(prefix=TESTFN_PREFIX, dir=HOME)
        self.addCleanup(safe_rmpath, outside)
        os.symlink(outside, self.join("link"))
        assert not self.fs.validpath(self.join("link"))
        with pytest.raises(FilesystemError, match="outside the user's root"):
            self.fs.change_directory(cc(), "/link")
        # a link pointing inside the root is fine
        os.mkdir(self.join("dir"))
        os.symlink(self.join("dir"), self.join("link2"))
        self.fs.change_directory(cc(), "/link2")

    def test_change_directory(self):
        os.mkdir(self.join("dir"))
        touch(self.join("file"))
        self.fs.change_directory(cc(), "/")
        self.fs.change_directory(cc(), "/dir")
        with pytest.raises(NotADirectoryError):
            self.fs.change_directory(cc(), "/file")
        with pytest.raises(FileNotFoundError):
            self.fs.change_directory(cc(), "/nonexistent")

    def test_make_directory(self):
        self.fs.make_directory(cc(), "/dir")
        assert os.path.isdir(self.join("dir"))
        with pytest.raises(FileExistsError):
            self.fs.make_directory(cc(), "/dir")

    def test_list_files(self):
        os.mkdir(self.join("b"))
        with open(self.join("a"), "wb") as f:
            f.write(b"abc")
        listing = self.fs.list_files(cc("/"))
        assert [x.name for x in listing] == ["a", "b"]
        a, b = listing
        assert not a.isdir
        assert a.size == 3
        assert b.isdir
        assert abs(a.mtime - os.path.getmtime(self.join("a"))) < 1
        # a file lists itself
        listing = self.fs.list_files(cc("/a"))
        assert [x.name for x in listing] == ["a"]
        with pytest.raises(FileNotFoundError):
            self.fs.list_files(cc("/nonexistent"))

    def test_open_file(self):
        with self.fs.open_file(cc(), "/file", "wb") as f:
            f.write(b"abc")
        with self.fs.open_file(cc(), "/file", "ab") as f:
            f.write(b"def")
        with self.fs.open_file(cc(), "/file", "r+b") as f:
            f.write(b"A")
        with self.fs.open_file(cc(), "/file", "rb") as f:
            assert f.read() == b"Abcdef"
        with pytest.raises(ValueError):
            self.fs.open_file(cc(), "/file", "w")

    def test_delete_file(self):
        touch(self.join("file"))
        os.mkdir(self.join("dir"))
        self.fs.delete_file(cc(), "/file")
        self.fs.delete_file(cc(), "/dir")
        assert os.listdir(self.root) == []
        with pytest.raises(FileNotFoundError):
            self.fs.delete_file(cc(), "/file")
        with pytest.raises(FilesystemError, match="root directory"):
            self.fs.delete_file(cc(), "/")

    def test_delete_non_empty_dir(self):
        os.mkdir(self.join("dir"))
        touch(self.join("dir", "file"))
        with pytest.raises(OSError):
            self.fs.delete_file(cc(), "/dir")

    def test_get_file_info(self):
        with open(self.join("file"), "wb") as f:
            f.write(b"abc")
        info = self.fs.get_file_info(cc(), "/file")
        assert info.name == "file"
        assert info.size == 3
        assert not info.isdir
        assert stat.S_ISREG(info.mode)

    def test_rename_file(self):
        touch(self.join("a"))
        self.fs.rename_file(cc(), "/a", "/b")
        assert os.listdir(self.root) == ["b"]
        with pytest.raises(FileNotFoundError):
            self.fs.rename_file(cc(), "/a", "/c")

    def test_can_allocate(self):
        assert self.fs.can_allocate(cc(), 1)
        assert not self.fs.can_allocate(cc(), 10**30)

    def test_notify_write(self):
        self.fs.notify_write(cc(), "/file")

    def test_perms(self):
        fs = LocalFilesystem(self.root, perm="elr")
        touch(self.join("file"))
        fs.change_directory(cc(), "/")
        fs.list_files(cc())
        fs.open_file(cc(), "/file", "rb").close()
        for fun, args in (
            (fs.make_directory, ("/dir",)),
            (fs.open_file, ("/file", "wb")),
            (fs.open_file, ("/file", "r+b")),
            (fs.open_file, ("/file", "ab")),
            (fs.delete_file, ("/file",)),
            (fs.rename_file, ("/file", "/file2")),
        ):
            with pytest.raises(FilesystemError, match="Not enough privileges"):
                fun(cc(), *args)
        fs = LocalFilesystem(self.root, perm="")
        with pytest.raises(FilesystemError):
            fs.change_directory(cc(), "/")
        with pytest.raises(FilesystemError):
            fs.open_file(cc(), "/file", "rb")


class TestFormatters(FTPServerTestCase):
    """Test format_list() and format_nlst() functions."""

    def test_format_list_file(self):
        now = time.time()
        info = FileInfo("foo", 10, now, False, stat.S_IFREG | 0o644)
        (line,) = list(format_list([info]))
        month = time.strftime("%b", time.gmtime(now))
        assert line.startswith("-rw-r--r--   1 owner    group          10 ")
        assert line.endswith(" foo\r\n")
        assert " " + month + " " in line
        assert re.search(r" \d\d:\d\d foo\r\n$", line)

    def test_format_list_dir(self):
        # permission bits only
        info = FileInfo("dir", 0, time.time(), True, 0o755)
        (line,) = list(format_list([info]))
        assert line.startswith("drwxr-xr-x")
        info = FileInfo("file", 0, time.time(), False, 0o600)
        (line,) = list(format_list([info]))
        assert line.startswith("-rw-------")

    def test_format_list_old_file(self):
        mtime = time.time() - 365 * 24 * 60 * 60
        info = FileInfo("foo", 10, mtime, False, 0o644)
        (line,) = list(format_list([info]))
        year = time.strftime("%Y", time.gmtime(mtime))
        assert line.endswith(f"  {year} foo\r\n")

    def test_format_nlst(self):
        listing = [
            FileInfo("a", 0, 0, False, 0o644),
            FileInfo("b", 0, 0, True, 0o755),
        ]
        assert list(format_nlst(listing)) == ["a\r\n", "b\r\n"]
        assert list(format_nlst([])) == []
