"""pluginctl: maintenance core of a command-line plugin manager.

Keeps local mirrors of remote plugin indexes in sync, reports new plugins
and upgrades for installed ones, and runs one-time layout migrations.
"""

__version__ = "0.3.0"
