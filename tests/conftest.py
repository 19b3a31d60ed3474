from ipaddress import IPv4Address

import pytest

from vpnc_script_win.__main__ import parse_env
from vpnc_script_win.plan import RedirectGateway
from vpnc_script_win.provider import CommandProvider
from vpnc_script_win.util import slurpy

ROUTE_PRINT = """\
===========================================================================
IPv4 Route Table
===========================================================================
Active Routes:
Network Destination        Netmask          Gateway       Interface  Metric
          0.0.0.0          0.0.0.0      192.168.1.1    192.168.1.100     25
        127.0.0.0        255.0.0.0         On-link         127.0.0.1    331
      192.168.1.0    255.255.255.0         On-link     192.168.1.100    281
===========================================================================
"""

VER_10 = "\r\nMicrosoft Windows [Version 10.0.19045.3803]\r\n"
VER_7 = "\r\nMicrosoft Windows [Version 6.1.7601]\r\n"

ORIG_GW = IPv4Address('192.168.1.1')

BASE_ENVIRON = {
    'TUNDEV': 'tun0',
    'TUNIDX': '12',
    'VPNGATEWAY': '203.0.113.10',
    'INTERNAL_IP4_ADDRESS': '10.1.2.3',
    'INTERNAL_IP4_NETMASK': '255.255.255.0',
}

SPLIT_INC = {
    'CISCO_SPLIT_INC': '2',
    'CISCO_SPLIT_INC_0_ADDR': '10.0.0.0',
    'CISCO_SPLIT_INC_0_MASK': '255.0.0.0',
    'CISCO_SPLIT_INC_0_MASKLEN': '8',
    'CISCO_SPLIT_INC_1_ADDR': '172.16.0.0',
    'CISCO_SPLIT_INC_1_MASK': '255.240.0.0',
    'CISCO_SPLIT_INC_1_MASKLEN': '12',
}

SPLIT_EXC = {
    'CISCO_SPLIT_EXC': '1',
    'CISCO_SPLIT_EXC_0_ADDR': '198.51.100.0',
    'CISCO_SPLIT_EXC_0_MASK': '255.255.255.0',
    'CISCO_SPLIT_EXC_0_MASKLEN': '24',
}

IPV6 = {
    'INTERNAL_IP6_ADDRESS': 'fd00::5',
    'INTERNAL_IP6_NETMASK': 'fd00::5/64',
}


class FakeProvider(CommandProvider):
    """Records commands; answers with canned (output, status) pairs."""
    def __init__(self, outputs=None, statuses=None):
        self.outputs = outputs or {}
        self.statuses = statuses or {}
        self.history = []

    def execute(self, command):
        self.history.append(command)
        return self.outputs.get(command, ''), self.statuses.get(command, 0)


@pytest.fixture
def make_env():
    def make(reason='connect', redirect_gateway=RedirectGateway.interface_gateway, **extra):
        environ = dict(BASE_ENVIRON, reason=reason)
        environ.update(extra)
        return parse_env(environ, redirect_gateway)
    return make


@pytest.fixture
def args():
    return slurpy(verbose=0, timestamps=False)


@pytest.fixture
def provider():
    return FakeProvider(outputs={'route print': ROUTE_PRINT, 'ver': VER_10})
