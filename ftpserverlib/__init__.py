# Copyright (C) 2007 Giampaolo Rodola' <g.rodola@gmail.com>.
# Use of this source code is governed by MIT license that can be
# found in the LICENSE file.

"""
ftpserverlib: an embeddable FTP server (RFC-959) with FTPS support
(RFC-4217).

The server owns the protocol: the control connection, command
dispatching, passive data channels, TLS and connection limits.
Everything else is delegated to "drivers" supplied by the embedding
application:

    [ftpserverlib.servers.FTPServer]
      accepts connections and runs a session thread for each of them,
      keeps the registry of live sessions.

    [ftpserverlib.handlers.FTPHandler]
      a class representing the server-protocol-interpreter
      (server-PI, see RFC-959). Each time a new connection occurs
      FTPServer will create a new FTPHandler instance to handle the
      current PI session.

    [ftpserverlib.transfer.PassiveTransfer]
      the data channel opened by PASV / EPSV.

    [ftpserverlib.drivers.ServerDriver]
    [ftpserverlib.drivers.ClientHandlingDriver]
      the interfaces drivers implement: greeting, authentication and
      TLS configuration on one side, filesystem access on the other.

    [ftpserverlib.authorizers.BasicServerDriver]
    [ftpserverlib.filesystems.LocalFilesystem]
      ready-made drivers serving local directories to the users of a
      DummyAuthorizer.

Usage example:

>>> from ftpserverlib.authorizers import BasicServerDriver
>>> from ftpserverlib.authorizers import DummyAuthorizer
>>> from ftpserverlib.drivers import Settings
>>> from ftpserverlib.servers import FTPServer
>>>
>>> authorizer = DummyAuthorizer()
>>> authorizer.add_user("user", "12345", "/home/giampaolo", perm="elradfmw")
>>> authorizer.add_anonymous("/home/nobody")
>>>
>>> settings = Settings(listen_host="127.0.0.1", listen_port=21)
>>> driver = BasicServerDriver(authorizer, settings)
>>> server = FTPServer(driver)
>>> server.serve_forever()
[I 24-02-19 10:55:42] >>> starting FTP server on 127.0.0.1:21, pid=5122 <<<
[I 24-02-19 10:55:42] masquerade (NAT) address:
[I 24-02-19 10:55:42] passive ports: None
[I 24-02-19 10:55:45] 127.0.0.1:34178-[] FTP session opened (connect)
[I 24-02-19 10:55:48] 127.0.0.1:34178-[user] USER 'user' logged in.
[I 24-02-19 10:56:39] 127.0.0.1:34178-[user] FTP session closed (disconnect).
"""

__ver__ = "0.1.0"
__author__ = "Giampaolo Rodola' <g.rodola@gmail.com>"
