from ipaddress import IPv4Network, ip_address


class Command:
    """A planned mutation of the OS network configuration.

    str() renders it as the command text handed to a CommandProvider;
    commands compare equal when they render identically.

    """
    def __eq__(self, other):
        if isinstance(other, Command):
            return str(self) == str(other)
        return NotImplemented

    def __hash__(self):
        return hash(str(self))

    def __repr__(self):
        return '<%s %r>' % (self.__class__.__name__, str(self))


class RouteCommand(Command):
    """Add or delete a Legacy IP route with route.exe"""
    def __init__(self, action, destination, via=None, *, dev=None, metric=None):
        assert action in ('add', 'delete')
        self.action = action
        self.destination = destination if isinstance(destination, IPv4Network) else IPv4Network(destination)
        self.via = None if via is None else ip_address(via)
        self.dev = dev
        self.metric = metric

    @classmethod
    def add(cls, destination, via, *, dev=None, metric=None):
        return cls('add', destination, via, dev=dev, metric=metric)

    @classmethod
    def delete(cls, destination):
        return cls('delete', destination)

    def __str__(self):
        words = ['route', self.action, self.destination.network_address, 'mask', self.destination.netmask]
        if self.via is not None:
            words.append(self.via)
        if self.metric is not None:
            words.extend(('metric', self.metric))
        if self.dev is not None:
            words.extend(('if', self.dev))
        return ' '.join(map(str, words))


class NetshCommand(Command):
    """Run 'netsh interface CONTEXT VERB ARGS... KEY=VALUE...'

    context is one of 'ip', 'ipv4' or 'ipv6'. Options whose value is
    None are omitted.

    """
    def __init__(self, context, verb, *args, **options):
        self.context = context
        self.verb = verb
        self.args = args
        self.options = options

    def __str__(self):
        words = ['netsh', 'interface', self.context, self.verb]
        words.extend(str(a) for a in self.args if a is not None)
        words.extend('%s=%s' % kv for kv in self.options.items() if kv[1] is not None)
        return ' '.join(words)
