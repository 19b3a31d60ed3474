import os
import re
import subprocess
from ipaddress import IPv4Address

from .provider import CommandProvider
from .util import get_executable


class CmdExeProvider(CommandProvider):
    def __init__(self, comspec=None):
        self.comspec = comspec or os.environ.get('COMSPEC') or get_executable(r'C:\Windows\System32\cmd.exe')

    def execute(self, command):
        cl = '%s /C "%s" 2>&1' % (self.comspec, command)
        try:
            p = subprocess.Popen(cl, stdin=subprocess.DEVNULL, stdout=subprocess.PIPE, stderr=subprocess.STDOUT,
                                 universal_newlines=True, errors='replace')
        except OSError as e:
            return f'could not run {cl!r}: {e!s}', 1
        output, _ = p.communicate()
        return output, p.returncode


default_route_re = re.compile(r'0\.0\.0\.0 *(?:0|128)\.0\.0\.0 *([0-9\.]*)')
version_re = re.compile(r'version\s+((?:\d+\.)+\d+)', re.I)


def get_default_gateway(executor):
    """Find the current (non-VPN) default gateway in the output of 'route print'.

    Returns an IPv4Address, or None if there isn't one.
    """
    output, _ = executor.execute('route print')
    for m in default_route_re.finditer(output):
        try:
            return IPv4Address(m.group(1))
        except ValueError:
            continue  # "On-link" or truncated
    return None


def get_windows_version(executor):
    """Return the dotted Windows version reported by 'ver', or None."""
    output, _ = executor.execute('ver')
    m = version_re.search(output)
    return m.group(1) if m else None


def windows_major_version(version):
    if version is None:
        return None
    major = version.split('.', 1)[0]
    return int(major) if major.isdigit() else None
