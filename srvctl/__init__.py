"""srvctl: start a named server, remember its PID, and later stop its whole tree.

    server-start api -d /srv/app            # daemon, pid in /srv/app/api.pid
    server-start api -d /srv/app -f         # attached; ctrl-c stops the tree
    server-stop -d /srv/app -n api          # reads api.pid, reaps, removes it
"""

from srvctl.launcher import Launcher
from srvctl.models import LaunchConfig, LaunchMode
from srvctl.pidfile import PidFile
from srvctl.terminator import Terminator

__all__ = ["Launcher", "LaunchConfig", "LaunchMode", "PidFile", "Terminator"]
