"""Gatehouse — identity resolution and session authorization.

Authenticates users through local passwords, Google and Apple, resolves
every proven identity onto one canonical account, and gates later requests
on a server-tracked session and the account's roles.
"""

__version__ = "0.1.0"
