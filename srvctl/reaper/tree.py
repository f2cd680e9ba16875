"""Process-tree discovery and signal fan-out."""

from __future__ import annotations

import logging
import signal

import psutil

log = logging.getLogger(__name__)


def _depth(proc: psutil.Process, root_pid: int) -> int:
    depth = 0
    try:
        for parent in proc.parents():
            depth += 1
            if parent.pid == root_pid:
                break
    except psutil.NoSuchProcess:
        pass
    return depth


def discover_tree(pid: int) -> list[psutil.Process]:
    """Return the live tree rooted at ``pid``, deepest descendants first.

    The root is always the last element.  An empty list means the root is
    already gone.
    """
    try:
        root = psutil.Process(pid)
        children = root.children(recursive=True)
    except psutil.NoSuchProcess:
        return []

    # Deepest first, so a parent never dies before its children are signalled
    children.sort(key=lambda p: _depth(p, pid), reverse=True)
    return [*children, root]


def reap_tree(pid: int, sig: int = signal.SIGTERM) -> list[int]:
    """Send ``sig`` to every process in the tree rooted at ``pid``.

    Processes that vanish before their signal arrives count as done.  A
    member we may not signal does not stop the fan-out: every other member
    still gets its signal, then ``psutil.AccessDenied`` is raised for the
    first refused pid.

    Returns the PIDs that were signalled.
    """
    tree = discover_tree(pid)
    if not tree:
        log.info("Process %d not running; nothing to kill", pid)
        return []

    signalled: list[int] = []
    denied: list[int] = []
    for proc in tree:
        try:
            proc.send_signal(sig)
        except psutil.NoSuchProcess:
            log.debug("Process %d already exited", proc.pid)
            continue
        except psutil.AccessDenied:
            log.warning("Not permitted to signal process %d", proc.pid)
            denied.append(proc.pid)
            continue
        signalled.append(proc.pid)

    log.info(
        "Sent %s to %d process(es) rooted at %d",
        signal.Signals(sig).name, len(signalled), pid,
    )
    if denied:
        raise psutil.AccessDenied(
            denied[0], msg=f"not permitted to signal {len(denied)} process(es): {denied}",
        )
    return signalled
