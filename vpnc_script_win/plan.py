"""Translate a ConnectionContext into the ordered list of commands needed to
configure (on connect) or deconfigure (on disconnect) the VPN interface.

Nothing in here runs anything: every function returns a list of Command
objects, and leaves it up to the caller to execute and log them.
"""

from enum import Enum
from ipaddress import IPv4Network, IPv6Network

from .commands import NetshCommand, RouteCommand
from .win import windows_major_version


class RedirectGateway(Enum):
    """How to make the VPN the default route for Legacy IP"""
    interface_gateway = 0   # as interface gateway when setting the address
    low_metric = 1          # as a 0.0.0.0/0 route with metric 1
    split_default = 2       # as 0.0.0.0/1 + 128.0.0.0/1 routes


DEFAULT_ROUTE = IPv4Network('0.0.0.0/0')
HALF_DEFAULT_ROUTES = (IPv4Network('0.0.0.0/1'), IPv4Network('128.0.0.0/1'))
GLOBAL_UNICAST6 = IPv6Network('2000::/3')


def host_network(address):
    return IPv4Network(address)


def uses_interface_metric(env):
    # Since Windows Vista, the interface metric must be set to 1 before
    # a route with metric 1 can be added to it.
    return not env.splitinc and env.redirect_gateway != RedirectGateway.split_default


def uses_interface_gateway(env):
    return not env.splitinc and env.redirect_gateway == RedirectGateway.interface_gateway


def protects_gateway(env, orig_gw):
    """Can we add an explicit route to the VPN gateway via orig_gw?"""
    return (orig_gw is not None and env.gateway is not None
            and env.gateway.version == 4 and not env.gateway.is_loopback)


def suppress_dns_validation(windows_version):
    # With validate=yes (the default on newer versions), Windows tries to
    # reach each DNS server and prints a warning after ~10s timeout.
    major = windows_major_version(windows_version)
    return major is not None and major >= 10

########################################

def configure_mtu(env):
    if env.mtu is None:
        return []
    cmds = [NetshCommand('ipv4', 'set subinterface', env.tunidx, mtu=env.mtu, store='active')]
    if env.myaddr6:
        cmds.append(NetshCommand('ipv6', 'set subinterface', env.tunidx, mtu=env.mtu, store='active'))
    return cmds


def configure_legacy_ip(env, windows_version=None):
    cmds = []
    if env.myaddr:
        if uses_interface_metric(env):
            cmds.append(NetshCommand('ip', 'set interface', env.tunidx, metric=1, store='active'))

        # The internal address doubles as the "gateway" of the tunnel. As
        # OpenConnect says, "it's a tunnel; having a gateway is meaningless."
        if uses_interface_gateway(env):
            # the default route is added automatically
            cmds.append(NetshCommand('ip', 'set address', env.tunidx, 'static', env.myaddr, env.netmask, env.myaddr,
                                     gwmetric=1, store='active'))
        else:
            cmds.append(NetshCommand('ip', 'set address', env.tunidx, 'static', env.myaddr, env.netmask,
                                     store='active'))

    cmds.append(NetshCommand('ipv4', 'del wins', env.tunidx, 'all'))
    cmds.extend(NetshCommand('ipv4', 'add wins', env.tunidx, wins) for wins in env.nbns)

    cmds.append(NetshCommand('ipv4', 'del dns', env.tunidx, 'all'))
    cmds.append(NetshCommand('ipv6', 'del dns', env.tunidx, 'all'))
    validate = 'no' if suppress_dns_validation(windows_version) else None
    for dns in env.dns:
        cmds.append(NetshCommand('ipv%d' % dns.version, 'add dns', env.tunidx, dns, validate=validate))
    return cmds


def configure_ipv6(env):
    if not env.myaddr6:
        return []
    cmds = [NetshCommand('ipv6', 'set address', env.tunidx, env.myaddr6, store='active')]
    if env.netmask6 and env.netmask6.network.prefixlen != env.netmask6.max_prefixlen:
        cmds.append(NetshCommand('ipv6', 'add route', env.netmask6.network, env.tunidx, store='active'))
    return cmds

########################################

def gateway_route(env, orig_gw):
    """Explicit route to the VPN gateway, to keep its traffic out of the tunnel"""
    if not protects_gateway(env, orig_gw):
        return []
    return [RouteCommand.add(host_network(env.gateway), orig_gw)]


def default_routes(env):
    if env.myaddr is None:
        return []
    elif env.splitinc:
        return [RouteCommand.add(net, env.myaddr, dev=env.tunidx) for net in env.splitinc]
    elif env.redirect_gateway == RedirectGateway.low_metric:
        return [RouteCommand.add(DEFAULT_ROUTE, env.myaddr, metric=1)]
    elif env.redirect_gateway == RedirectGateway.split_default:
        return [RouteCommand.add(net, env.myaddr) for net in HALF_DEFAULT_ROUTES]
    else:
        # already added along with the interface address
        return []


def split_exclude_routes(env, orig_gw):
    if orig_gw is None:
        return []
    return [RouteCommand.add(net, orig_gw) for net in env.splitexc]


def legacy_ip_routes(env, orig_gw):
    return default_routes(env) + split_exclude_routes(env, orig_gw)


def ipv6_routes(env):
    # FIXME: IPv6 split-excludes are not supported
    if not env.myaddr6:
        return []
    nets = env.splitinc6 or (GLOBAL_UNICAST6,)
    return [NetshCommand('ipv6', 'add route', net, env.tunidx, store='active') for net in nets]

########################################

def plan_connect(env, orig_gw, windows_version=None):
    """Return the connect plan as an ordered list of (description, commands)."""
    iface = f'"{env.tundev}" / {env.tunidx}'
    sections = [
        (f'Setting MTU of {iface} to {env.mtu}', configure_mtu(env)),
        (f'Configuring explicit route to VPN gateway {env.gateway}', gateway_route(env, orig_gw)),
        (f'Configuring {iface} interface for Legacy IP...', configure_legacy_ip(env, windows_version)),
        ('Configuring Legacy IP networks...', legacy_ip_routes(env, orig_gw)),
        (f'Configuring {iface} interface for IPv6...', configure_ipv6(env)),
        ('Configuring IPv6 networks...', ipv6_routes(env)),
    ]
    return [(desc, cmds) for desc, cmds in sections if cmds]


def plan_disconnect(env):
    """Undo everything that won't go away along with the interface address.

    Split-include and IPv6 routes are scoped to the tunnel interface, and
    disappear when its addresses are removed; DNS and WINS servers are
    left for the next connect (or the OS) to overwrite.
    """
    cmds = []
    if env.gateway is not None and env.gateway.version == 4 and not env.gateway.is_loopback:
        cmds.append(RouteCommand.delete(host_network(env.gateway)))
    if env.myaddr:
        # gateway=all also removes the default route added with the address
        cmds.append(NetshCommand('ipv4', 'del address', env.tunidx, env.myaddr, gateway='all'))
    if env.myaddr6:
        cmds.append(NetshCommand('ipv6', 'del address', env.tunidx, env.myaddr6, store='active'))
    cmds.extend(RouteCommand.delete(net) for net in env.splitexc)
    return cmds
