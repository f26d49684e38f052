# Copyright (C) 2007 Giampaolo Rodola' <g.rodola@gmail.com>.
# Use of this source code is governed by MIT license that can be
# found in the LICENSE file.

"""ftpserverlib installer.

$ python setup.py install
"""

import ast
import os
import sys

# Test deps, installable via `pip install .[test]`.
TEST_DEPS = [
    "cryptography",
    "psutil",
    "pyopenssl",
    "pytest",
    "pytest-instafail",
    "pytest-xdist",
    "setuptools",
]

# Development deps, installable via `pip install .[dev]`.
DEV_DEPS = [
    "black",
    "check-manifest",
    "coverage",
    "pylint",
    "pytest-cov",
    "pytest-xdist",
    "rstcheck",
    "ruff",
    "twine",
]


def get_version():
    INIT = os.path.abspath(
        os.path.join(os.path.dirname(__file__), "ftpserverlib", "__init__.py")
    )
    with open(INIT) as f:
        for line in f:
            if line.startswith("__ver__"):
                ret = ast.literal_eval(line.strip().split(" = ")[1])
                assert ret.count(".") == 2, ret
                for num in ret.split("."):
                    assert num.isdigit(), ret
                return ret
        raise ValueError("couldn't find version string")


with open("README.rst") as f:
    long_description = f.read()


def main():
    from setuptools import setup  # noqa: PLC0415

    setup(
        name="ftpserverlib",
        version=get_version(),
        description="Embeddable threaded FTP server library",
        long_description=long_description,
        long_description_content_type="text/x-rst",
        license="MIT",
        platforms="Platform Independent",
        author="Giampaolo Rodola'",
        author_email="g.rodola@gmail.com",
        packages=["ftpserverlib", "ftpserverlib.test"],
        # fmt: off
        keywords=["ftp", "ftps", "server", "ftpd", "python", "ssl", "tls",
                  "threaded", "rfc959", "rfc1123", "rfc2228", "rfc2428",
                  "rfc3659", "rfc4217"],
        # fmt: on
        install_requires=["pyopenssl"],
        extras_require={
            "dev": DEV_DEPS,
            "test": TEST_DEPS,
        },
        python_requires=">=3.8",
        zip_safe=False,
        classifiers=[
            "Development Status :: 4 - Beta",
            "Environment :: Console",
            "Intended Audience :: Developers",
            "Intended Audience :: System Administrators",
            "Operating System :: OS Independent",
            "Programming Language :: Python",
            "Topic :: Internet :: File Transfer Protocol (FTP)",
            "Topic :: Software Development :: Libraries :: Python Modules",
            "Topic :: System :: Filesystems",
            "Programming Language :: Python :: 3",
        ],
    )


if sys.version_info[0] < 3:  # noqa: UP036
    sys.exit("Python 2 is not supported.")

if __name__ == "__main__":
    main()
