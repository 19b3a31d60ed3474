import re

import pytest

from conftest import BASE_ENVIRON, IPV6, ROUTE_PRINT, SPLIT_EXC, VER_10, FakeProvider
import vpnc_script_win.__main__ as vsw
from vpnc_script_win.__main__ import ReportingProvider, handle_event
from vpnc_script_win.generic import DryRunProvider
from vpnc_script_win.util import DEBUG, TRACE, echo, slurpy


def test_pre_init_runs_nothing(make_env, args, provider):
    assert handle_event(make_env('pre-init'), args, provider) == 0
    assert provider.history == []


@pytest.mark.parametrize('reason', ['reconnect', 'attempt-reconnect'])
def test_reconnect_runs_nothing(make_env, args, provider, reason):
    assert handle_event(make_env(reason), args, provider) == 0
    assert provider.history == []


def test_connect(make_env, args, provider):
    env = make_env(INTERNAL_IP4_DNS='8.8.8.8')
    assert handle_event(env, args, provider) == 0
    assert provider.history == [
        'route print',
        'ver',
        'route add 203.0.113.10 mask 255.255.255.255 192.168.1.1',
        'netsh interface ip set interface 12 metric=1 store=active',
        'netsh interface ip set address 12 static 10.1.2.3 255.255.255.0 10.1.2.3 gwmetric=1 store=active',
        'netsh interface ipv4 del wins 12 all',
        'netsh interface ipv4 del dns 12 all',
        'netsh interface ipv6 del dns 12 all',
        'netsh interface ipv4 add dns 12 8.8.8.8 validate=no',
    ]


def test_connect_without_gateway_or_version(make_env, args, capsys):
    provider = FakeProvider()
    env = make_env(INTERNAL_IP4_DNS='8.8.8.8', **SPLIT_EXC)
    # the unroutable split-exclude counts as a failure
    assert handle_event(env, args, provider) == 1
    assert not any(c.startswith('route add') for c in provider.history)
    assert 'netsh interface ipv4 add dns 12 8.8.8.8' in provider.history
    err = capsys.readouterr().err
    assert 'cannot set explicit route to VPN gateway' in err
    assert 'Cannot add Legacy IP split-exclude route 198.51.100.0/24' in err
    assert "Could not determine Windows version" in err


def test_each_unroutable_split_exclude_fails(make_env, args):
    env = make_env(**dict(SPLIT_EXC, CISCO_SPLIT_EXC='2', CISCO_SPLIT_EXC_1_ADDR='192.0.2.0',
                          CISCO_SPLIT_EXC_1_MASK='255.255.255.0', CISCO_SPLIT_EXC_1_MASKLEN='24'))
    provider = FakeProvider(statuses={'netsh interface ipv4 del wins 12 all': 1})
    assert handle_event(env, args, provider) == 3
    assert provider.history[-1] == 'netsh interface ipv6 del dns 12 all'


def test_failures_are_summed_and_do_not_stop(make_env, args):
    provider = FakeProvider(
        outputs={'route print': ROUTE_PRINT, 'ver': VER_10},
        statuses={'netsh interface ipv4 del wins 12 all': 1, 'netsh interface ipv6 del dns 12 all': 1})
    env = make_env(INTERNAL_IP4_DNS='8.8.8.8')
    assert handle_event(env, args, provider) == 2
    assert provider.history[-1] == 'netsh interface ipv4 add dns 12 8.8.8.8 validate=no'


def test_disconnect(make_env, args, provider):
    env = make_env('disconnect', **IPV6, **SPLIT_EXC)
    provider.statuses['route delete 198.51.100.0 mask 255.255.255.0'] = 1
    assert handle_event(env, args, provider) == 1
    assert provider.history == [
        'route delete 203.0.113.10 mask 255.255.255.255',
        'netsh interface ipv4 del address 12 10.1.2.3 gateway=all',
        'netsh interface ipv6 del address 12 fd00::5 store=active',
        'route delete 198.51.100.0 mask 255.255.255.0',
    ]


def test_banner(make_env, provider, capsys):
    args = slurpy(verbose=1, timestamps=False)
    handle_event(make_env(CISCO_BANNER='Authorized users only'), args, provider)
    assert 'Authorized users only' in capsys.readouterr().err


class TestReporting:
    def test_logging(self, capsys):
        args = slurpy(verbose=DEBUG, timestamps=False)
        runner = ReportingProvider(FakeProvider(outputs={'ver': 'ok'}, statuses={'bad': 3}), args)
        runner.run_all(['ver', 'bad', 'ver'])
        assert runner.status == 3
        err = capsys.readouterr().err
        assert '-> ver' in err
        assert '"bad" returned non-zero exit status: 3' in err
        assert 'stdout+stderr dump: ok' not in err

    def test_trace(self, capsys):
        args = slurpy(verbose=TRACE, timestamps=False)
        ReportingProvider(FakeProvider(outputs={'ver': 'ok'}), args).execute('ver')
        assert 'stdout+stderr dump: ok' in capsys.readouterr().err

    def test_quiet(self, capsys):
        args = slurpy(verbose=0, timestamps=False)
        ReportingProvider(FakeProvider(statuses={'bad': 1}), args).execute('bad')
        err = capsys.readouterr().err
        assert '"bad" returned non-zero exit status: 1' in err
        assert '-> bad' not in err

    def test_timestamps(self, capsys):
        echo(slurpy(verbose=1, timestamps=True), 1, 'hello')
        assert re.match(r'\[\d{4}-\d\d-\d\d \d\d:\d\d:\d\d\] hello$', capsys.readouterr().err.strip())


class TestMain:
    @pytest.fixture(autouse=True)
    def no_proctitle(self, monkeypatch):
        titles = []
        monkeypatch.setattr(vsw, 'setproctitle', titles.append)
        return titles

    def test_dry_run(self, capsys, no_proctitle):
        with pytest.raises(SystemExit) as e:
            vsw.main(['--dry-run', '-g', 'split-default'], dict(BASE_ENVIRON, reason='connect'))
        assert e.value.code == 0
        out = capsys.readouterr().out.splitlines()
        assert out[:2] == ['route print', 'ver']
        assert 'route add 0.0.0.0 mask 128.0.0.0 10.1.2.3' in out
        assert 'route add 128.0.0.0 mask 128.0.0.0 10.1.2.3' in out
        assert no_proctitle == ['vpnc-script-win connect tun0']

    def test_dump(self, capsys):
        with pytest.raises(SystemExit):
            vsw.main(['--dry-run', '--dump'], dict(BASE_ENVIRON, reason='pre-init'))
        err = capsys.readouterr().err
        assert "INTERNAL_IP4_ADDRESS => myaddr=IPv4Address('10.1.2.3')" in err

    def test_no_reason(self):
        with pytest.raises(SystemExit) as e:
            vsw.main(['--dry-run'], dict(BASE_ENVIRON))
        assert 'with $reason set' in str(e.value.code)

    def test_script_tun(self):
        with pytest.raises(SystemExit) as e:
            vsw.main(['--dry-run'], dict(BASE_ENVIRON, VPNFD='5'))
        assert '--script-tun' in str(e.value.code)

    def test_no_tunidx(self):
        environ = dict(BASE_ENVIRON, reason='disconnect')
        del environ['TUNIDX']
        with pytest.raises(SystemExit) as e:
            vsw.main(['--dry-run'], environ)
        assert '$TUNIDX' in str(e.value.code)

    def test_unsupported_platform(self, monkeypatch, capsys):
        monkeypatch.setattr(vsw, 'platform', 'linux')
        with pytest.raises(SystemExit) as e:
            vsw.main([], dict(BASE_ENVIRON, reason='connect'))
        assert 'command provider is required' in str(e.value.code)
        assert 'unsupported' in capsys.readouterr().err


def test_dry_run_provider_history():
    p = DryRunProvider({'ver': VER_10}, echo=False)
    assert p.execute('ver') == (VER_10, 0)
    assert p.execute('route print') == ('', 0)
    assert p.history == ['ver', 'route print']
