import sys

from .provider import CommandProvider


class DryRunProvider(CommandProvider):
    """Print (and remember) commands instead of running them.

    Every command succeeds with the canned output given for it, or with
    no output at all.
    """
    def __init__(self, outputs=None, echo=True):
        self.outputs = outputs or {}
        self.echo = echo
        self.history = []

    def execute(self, command):
        self.history.append(command)
        if self.echo:
            print(command, file=sys.stdout)
        return self.outputs.get(command, ''), 0
