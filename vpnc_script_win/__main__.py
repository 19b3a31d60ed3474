#!/usr/bin/env python3

import argparse
import os
import sys
from collections import namedtuple
from enum import Enum
from ipaddress import IPv4Address, IPv4Network, IPv6Address, IPv6Interface, IPv6Network, ip_address
from sys import platform

from setproctitle import setproctitle

from .plan import RedirectGateway, plan_connect, plan_disconnect, protects_gateway
from .provider import CommandProvider
from .util import DEBUG, ERROR, INFO, TRACE, echo, slurpy
from .version import __version__
from .win import get_default_gateway, get_windows_version


def get_default_providers(dry_run=False):
    if dry_run:
        from .generic import DryRunProvider
        return dict(command=DryRunProvider)
    elif platform.startswith('win32'):
        from .win import CmdExeProvider
        return dict(command=CmdExeProvider)
    else:
        return dict(
            command = OSError(f'Your platform, {platform}, is unsupported (try --dry-run)')
        )


def redirect_gateway_param(s):
    try:
        return RedirectGateway(int(s)) if s.isdigit() else RedirectGateway[s.replace('-', '_')]
    except (KeyError, ValueError):
        raise argparse.ArgumentTypeError(
            f"invalid method {s!r} (choose from 0, 1, 2, {', '.join(m.name.replace('_', '-') for m in RedirectGateway)})")


def addresses(maker):
    """Parse a space-separated list of addresses, dropping invalid ones."""
    def parse(s):
        result = []
        for x in s.split():
            try:
                result.append(maker(x))
            except ValueError as e:
                print(f'WARNING: ignoring invalid address {x!r}: {e!s}', file=sys.stderr)
        return tuple(result)
    return parse


def ipv6_address(s):
    """IPv6Interface if s carries a prefix length, otherwise IPv6Address"""
    return IPv6Interface(s) if '/' in s else IPv6Address(s)

########################################

class ReportingProvider(CommandProvider):
    """Run commands with another provider, logging them and summing their exit statuses."""
    def __init__(self, provider, args):
        self.provider = provider
        self.args = args
        self.status = 0

    def execute(self, command):
        echo(self.args, DEBUG, f'-> {command}')
        output, status = self.provider.execute(command)
        if status != 0:
            echo(self.args, ERROR, f'"{command}" returned non-zero exit status: {status}')
        echo(self.args, ERROR if status != 0 else TRACE, f'   stdout+stderr dump: {output}')
        self.status += status
        return output, status

    def fail(self, message):
        """Count an operation that could not even be attempted as failed."""
        echo(self.args, ERROR, message)
        self.status += 1

    def run_all(self, commands):
        for cmd in commands:
            self.execute(str(cmd))
        return self.status


def do_pre_init(env, args, runner):
    pass


def do_connect(env, args, runner):
    gw = get_default_gateway(runner)

    winver = get_windows_version(runner)
    if winver:
        echo(args, INFO, f'Running on Windows version: {winver}')
    else:
        echo(args, ERROR, "Could not determine Windows version from 'ver' command")

    echo(args, INFO, f'Default/Internet gateway  : {gw or ""}')
    echo(args, INFO, f'VPN Interface Identifiers : "{env.tundev}" / {env.tunidx}')
    echo(args, INFO, f'Public VPN Gateway Address: {env.gateway}')
    echo(args, INFO, f'Internal Legacy IP Address: {env.myaddr}')
    echo(args, INFO, f'Internal Legacy IP Netmask: {env.netmask}')

    if env.gateway is None:
        print("WARNING: VPNGATEWAY is not set; cannot set explicit route to it.", file=sys.stderr)
    elif env.gateway.is_loopback:
        print(f"WARNING: Gateway address is loopback ({env.gateway}); probably a local proxy.", file=sys.stderr)
    elif env.gateway.version != 4:
        print(f"WARNING: explicit route to IPv6 VPN gateway {env.gateway} is unsupported.", file=sys.stderr)
    elif not protects_gateway(env, gw):
        print(f"WARNING: no default gateway found; cannot set explicit route to VPN gateway {env.gateway}.", file=sys.stderr)
    if gw is None:
        for net in env.splitexc:
            runner.fail(f'Cannot add Legacy IP split-exclude route {net}: no default gateway found')
    if env.myaddr is None:
        print("WARNING: INTERNAL_IP4_ADDRESS is not set; not configuring a Legacy IP address or routes.", file=sys.stderr)

    for desc, cmds in plan_connect(env, gw, winver):
        echo(args, INFO, desc)
        runner.run_all(cmds)

    if env.nbns:
        echo(args, INFO, f"Configured {len(env.nbns)} WINS servers: {' '.join(map(str, env.nbns))}")
    if env.dns:
        echo(args, INFO, f"Configured {len(env.dns)} DNS servers: {' '.join(map(str, env.dns))}")
    if env.myaddr:
        for net in env.splitinc:
            echo(args, INFO, f'Configured Legacy IP split-include route: {net}')
        if not env.splitinc:
            echo(args, INFO, f'Configured Legacy IP default route ({env.redirect_gateway.name.replace("_", "-")}).')
    if gw:
        for net in env.splitexc:
            echo(args, INFO, f'Configured Legacy IP split-exclude route: {net}')
    if env.myaddr6:
        for net in env.splitinc6:
            echo(args, INFO, f'Configured IPv6 split-include route: {net}')
        if not env.splitinc6:
            echo(args, INFO, 'Set default IPv6 route through VPN.')

    if env.banner:
        echo(args, INFO, '-' * 50)
        echo(args, INFO, env.banner)
        echo(args, INFO, '-' * 50)


def do_disconnect(env, args, runner):
    echo(args, INFO, f'Deconfiguring "{env.tundev}" / {env.tunidx} interface...')
    if env.gateway:
        echo(args, INFO, f'Removing explicit route to VPN gateway {env.gateway}')
    echo(args, INFO, f'Removing{" IPv6 and" if env.myaddr6 else ""} Legacy IP addresses')
    if env.splitexc:
        echo(args, INFO, f'Removing {len(env.splitexc)} Legacy IP split-exclude routes')
    runner.run_all(plan_disconnect(env))
    echo(args, INFO, 'done.')


def handle_event(env, args, provider):
    """Handle one event, returning the sum of the exit statuses of all commands run."""
    runner = ReportingProvider(provider, args)
    if env.reason == reasons.pre_init:
        do_pre_init(env, args, runner)
    elif env.reason == reasons.connect:
        do_connect(env, args, runner)
    elif env.reason == reasons.disconnect:
        do_disconnect(env, args, runner)
    elif env.reason in (reasons.reconnect, reasons.attempt_reconnect):
        # Windows drops routes through the tunnel interface along with it,
        # so there is nothing to restore here.
        echo(args, DEBUG, f'Ignoring reason={env.reason.name}')
    else:
        raise AssertionError(f'unhandled reason {env.reason!r}')
    return runner.status

########################################

# Translate environment variables which may be passed by our caller
# into a more Pythonic form (these are taken from vpnc-script)
reasons = Enum('reasons', 'pre_init connect disconnect reconnect attempt_reconnect')
vpncenv = [
    ('reason', 'reason', lambda x: reasons[x.replace('-', '_')]),
    ('vpnfd', 'VPNFD', int),  # set if OpenConnect invoked in --script-tun/ocproxy mode
    ('gateway', 'VPNGATEWAY', ip_address),
    ('tundev', 'TUNDEV', str),
    ('tunidx', 'TUNIDX', str),
    ('banner', 'CISCO_BANNER', str),
    ('myaddr', 'INTERNAL_IP4_ADDRESS', IPv4Address),      # a.b.c.d
    ('mtu', 'INTERNAL_IP4_MTU', int),
    ('netmask', 'INTERNAL_IP4_NETMASK', IPv4Address, IPv4Address('255.255.255.255')),
    ('dns', 'INTERNAL_IP4_DNS', addresses(ip_address), ()),   # Legacy IP and IPv6 alike
    ('nbns', 'INTERNAL_IP4_NBNS', addresses(IPv4Address), ()),
    ('myaddr6', 'INTERNAL_IP6_ADDRESS', ipv6_address),    # x:y::z or x:y::z/p
    ('netmask6', 'INTERNAL_IP6_NETMASK', IPv6Interface),  # x:y:z::/p
    ('nsplitinc', 'CISCO_SPLIT_INC', int, 0),
    ('nsplitexc', 'CISCO_SPLIT_EXC', int, 0),
    ('nsplitinc6', 'CISCO_IPV6_SPLIT_INC', int, 0),
]

ConnectionContext = namedtuple('ConnectionContext', [var for var, *rest in vpncenv]
                               + ['splitinc', 'splitexc', 'splitinc6', 'redirect_gateway'])


def parse_split(environ, pfx, n, ipv6=False):
    """Parse one CISCO_[IPV6_]SPLIT_{INC,EXC}_<n>_* entry into a network, or None."""
    base = f'CISCO_{"IPV6_" if ipv6 else ""}SPLIT_{pfx}_{n}'
    try:
        if ipv6:
            ad = IPv6Address(environ[f'{base}_ADDR'])
            net = IPv6Network(ad).supernet(new_prefix=int(environ[f'{base}_MASKLEN']))
        else:
            ad = IPv4Address(environ[f'{base}_ADDR'])
            nm = environ.get(f'{base}_MASK')
            nml = environ.get(f'{base}_MASKLEN')
            if nml:
                net = IPv4Network(ad).supernet(new_prefix=int(nml))
                if nm and IPv4Address(nm) != net.netmask:
                    print(f"WARNING: split network {base}_{{ADDR,MASK}} {ad}/{nm} does not match "
                          f"{base}_MASKLEN={nml}, using {net}", file=sys.stderr)
            else:
                net = IPv4Network(f'{ad}/{environ[base + "_MASK"]}', strict=False)
    except KeyError as e:
        print(f"WARNING: ignoring split network {base}, because {e.args[0]} is not set", file=sys.stderr)
        return None
    except ValueError as e:
        print(f"WARNING: ignoring invalid split network {base}: {e!s}", file=sys.stderr)
        return None

    if net.network_address != ad:
        print(f"WARNING: split network {base} {ad}/{net.prefixlen} has host bits set, replacing with {net}", file=sys.stderr)
    return net


def parse_env(environ=os.environ, redirect_gateway=RedirectGateway.interface_gateway):
    global vpncenv
    env = slurpy()
    for var, envar, maker, *default in vpncenv:
        val = None
        if environ.get(envar):
            try:
                val = maker(environ[envar])
            except (KeyError, ValueError):
                print(f'WARNING: ignoring invalid value of environment variable {envar}={environ[envar]!r}', file=sys.stderr)
        if val is None and default:
            val, = default
        env[var] = val

    # Handle splits
    env.splitinc, env.splitexc, env.splitinc6 = (
        tuple(net for net in (parse_split(environ, pfx, n, ipv6) for n in range(count)) if net is not None)
        for pfx, count, ipv6 in (('INC', env.nsplitinc, False), ('EXC', env.nsplitexc, False), ('INC', env.nsplitinc6, True)))

    env.redirect_gateway = redirect_gateway
    return ConnectionContext(**env)


# Parse command-line arguments and environment
def parse_args_and_env(args=None, environ=os.environ):
    p = argparse.ArgumentParser(
        prog='vpnc-script-win',
        description='vpnc-script for Windows: configures addresses, routes, DNS and WINS servers of a VPN interface.')
    g = p.add_argument_group('Routing options')
    g.add_argument('-g', '--redirect-gateway', type=redirect_gateway_param, default=RedirectGateway.interface_gateway,
                   metavar='METHOD', help="How to route all Legacy IP traffic through the VPN when it doesn't supply "
                   "split-include routes: 0 or interface-gateway (as the interface's gateway, the default), "
                   "1 or low-metric (as a 0.0.0.0/0 route with metric 1), "
                   "2 or split-default (as 0.0.0.0/1 and 128.0.0.0/1 routes)")
    g = p.add_argument_group('Debugging options')
    g.add_argument('-n', '--dry-run', action='store_true', help="Print commands instead of running them")
    g.add_argument('-v', '--verbose', default=0, action='count', help="Explain what %(prog)s is doing in more detail. Specify repeatedly to increase the level of detail.")
    g.add_argument('-q', '--quiet', default=0, action='count', help="Explain less. Specify repeatedly to decrease the level of detail.")
    g.add_argument('-T', '--timestamps', action='store_true', help="Prefix messages with timestamps")
    g.add_argument('-D', '--dump', action='store_true', help='Dump environment variables passed by caller')
    p.add_argument('-V', '--version', action='version', version='%(prog)s ' + __version__)
    args = p.parse_args(args)

    # start from $LOG_LEVEL (0=error, 1=info, 2=debug, 3=trace)
    try:
        base_level = int(environ.get('LOG_LEVEL') or INFO)
    except ValueError:
        print(f"WARNING: ignoring invalid LOG_LEVEL={environ['LOG_LEVEL']!r}", file=sys.stderr)
        base_level = INFO
    args.verbose = max(ERROR, base_level + args.verbose - args.quiet)

    env = parse_env(environ, args.redirect_gateway)
    return p, args, env


def dump_env(env, environ):
    print('Called with environment variables for vpnc-script:', file=sys.stderr)
    width = max((len(envar) for var, envar, *rest in vpncenv if envar in environ), default=0)
    for var, envar, *rest in vpncenv:
        if envar in environ:
            print('  %-*s => %s=%r' % (width, envar, var, getattr(env, var)), file=sys.stderr)
    for var, envar in (('splitinc', 'CISCO_SPLIT_INC_*'), ('splitexc', 'CISCO_SPLIT_EXC_*'), ('splitinc6', 'CISCO_IPV6_SPLIT_INC_*')):
        if getattr(env, var):
            print('  %-*s => %s=%r' % (width, envar, var, getattr(env, var)), file=sys.stderr)
    print(f'Redirect-gateway method: {env.redirect_gateway.name}', file=sys.stderr)


def main(args=None, environ=os.environ):
    global providers

    p, args, env = parse_args_and_env(args, environ)

    # Set platform-specific providers
    providers = slurpy()
    for pn, pv in get_default_providers(args.dry_run).items():
        try:
            if isinstance(pv, Exception):
                raise pv
            providers[pn] = pv()
        except OSError as e:
            print(f"WARNING: Couldn't configure {pn} provider: {e}", file=sys.stderr)
    if 'command' not in providers:
        raise SystemExit("Aborting because a command provider is required; use --help for more information")

    if args.dump:
        dump_env(env, environ)

    if env.reason is None:
        if env.vpnfd is not None:
            raise SystemExit("Called by openconnect in --script-tun mode; you need a different script. See https://www.infradead.org/openconnect/nonroot.html")
        else:
            raise SystemExit("Must be called as vpnc-script, with $reason set; use --help for more information")
    elif env.reason in (reasons.connect, reasons.disconnect) and not env.tunidx:
        raise SystemExit(f"Cannot {env.reason.name} without $TUNIDX (the index of the VPN interface)")

    setproctitle(f"{p.prog} {env.reason.name.replace('_', '-')} {env.tundev or ''}".rstrip())
    raise SystemExit(handle_event(env, args, providers.command))


if __name__ == '__main__':
    main()
