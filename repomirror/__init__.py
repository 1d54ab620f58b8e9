"""
repomirror — Keep a local git working copy in sync with a remote.

A push notification on the trigger port fetches the remote, computes the
file-level change set, hard-resets the working copy and tells registered
observers what was added and removed.
"""

__version__ = "0.1.0"
