"""Taskhub — task management backend.

Users sign up, log in from any number of devices and keep a private task
list. Every session is a signed token backed by a row in the per-user
session table, so logging out actually revokes access.
"""

__version__ = "0.1.0"
