"""Reaper — signals every process in a tree rooted at one PID.

Runs as its own short-lived process, normally already elevated by the
terminator:

    sudo python -m srvctl.reaper <pid>

The tree is discovered when the reaper runs, not when the server started,
so workers spawned later are still reached.
"""

from srvctl.reaper.tree import discover_tree, reap_tree

__all__ = ["discover_tree", "reap_tree"]
