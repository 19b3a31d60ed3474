from abc import ABCMeta, abstractmethod


class CommandProvider(metaclass=ABCMeta):
    @abstractmethod
    def execute(self, command):
        """Run one textual OS command.

        Return a tuple of (output, exit_status), where output combines
        stdout and stderr.

        Implementations must not raise: a non-zero exit status is a
        normal result which the caller reports and accumulates.

        """
