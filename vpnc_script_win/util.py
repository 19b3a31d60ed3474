import os
import os.path
import sys
from datetime import datetime
from shutil import which

# Log levels, as understood by $LOG_LEVEL
ERROR, INFO, DEBUG, TRACE = range(4)


def get_executable(*paths, fallback_to_which=True):
    bn = os.path.basename(paths[0])
    for path in paths:
        if os.access(path, os.X_OK):
            return path
    if fallback_to_which:
        path = which(bn)
        if path and os.access(path, os.X_OK):
            return path
    raise OSError('cannot find executable {} (tried {}{})'.format(
        bn, ', '.join(paths), (', $PATH' if fallback_to_which else '')))


class slurpy(dict):
    """Quacks like a dict and an object"""
    def __getattr__(self, k):
        try:
            return self[k]
        except KeyError as e:
            raise AttributeError(*e.args)

    def __setattr__(self, k, v):
        self[k] = v


def echo(args, level, msg):
    """Print a message to stderr if args.verbose is at least level."""
    if args.verbose < level:
        return
    if args.timestamps:
        # same format as `openconnect --timestamp`
        msg = '[%s] %s' % (datetime.now().strftime('%Y-%m-%d %H:%M:%S'), msg)
    print(msg, file=sys.stderr)
