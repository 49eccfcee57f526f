"""
sessionflow — secure session sync for AI coding assistants.

Mirrors the session directories of your assistant CLIs into one
workspace, scans it for leaked secrets, and publishes what survives
to a private git repository. Pull it back down with restore, wipe
local state with clean.
"""

__version__ = "0.1.0"
__author__ = "sessionflow contributors"

GIT_HOST_ENV = "GIT_HOST"
