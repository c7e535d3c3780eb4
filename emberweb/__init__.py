"""Epoll-based static HTTP server with form login, rotating log files and a Unix-socket command shell."""

__version__ = "0.1.0"