"""
Unit tests for the metricd export client.
"""

import json
import logging
import socket

import pytest

from metrictrack.export import MetricdClient
from metrictrack.export import metricd_client
from metrictrack.utils.config_validator import MetricdSettings

# Link-local address that nothing answers on
UNROUTABLE = '169.254.0.1'


class RecordingSocket:
    """Stand-in for a UDP socket that records sendto calls."""
    
    sent = []
    families = []
    fail_with = None
    
    def __init__(self, family, kind):
        self.family = family
        RecordingSocket.families.append(family)
        self.kind = kind
        self.timeout = None
        self.closed = False
    
    def __enter__(self):
        return self
    
    def __exit__(self, *exc):
        self.closed = True
    
    def settimeout(self, timeout):
        self.timeout = timeout
    
    def sendto(self, data, address):
        if RecordingSocket.fail_with is not None:
            raise RecordingSocket.fail_with
        RecordingSocket.sent.append((data, address, self.timeout))
        return len(data)


@pytest.fixture
def fake_socket(monkeypatch):
    RecordingSocket.sent = []
    RecordingSocket.families = []
    RecordingSocket.fail_with = None
    monkeypatch.setattr(metricd_client.socket, 'socket', RecordingSocket)
    return RecordingSocket


class TestDefaults:
    """Test client configuration."""
    
    def test_defaults(self):
        """Test default host, port and hostname."""
        client = MetricdClient()
        assert client.host == '127.0.0.1'
        assert client.port == 8125
        assert client.hostname == socket.gethostname()
        assert client.app is None
        assert client.last_result is None
    
    def test_setters_chain(self):
        """Test setters return the client."""
        client = MetricdClient()
        same = client.set_host('10.0.0.1').set_port(9000).set_hostname('web01').set_app('shop')
        assert same is client
        assert client.destination == '10.0.0.1:9000'
        assert client.hostname == 'web01'
        assert client.app == 'shop'
    
    def test_from_settings(self):
        """Test building a client from validated settings."""
        settings = MetricdSettings(host='10.1.1.1', port=8200, app='billing', hostname='h1', timeout_s=0.1)
        client = MetricdClient.from_settings(settings)
        assert client.destination == '10.1.1.1:8200'
        assert client.app == 'billing'
        assert client.hostname == 'h1'
        assert client.timeout_s == 0.1


class TestPayload:
    """Test datagram payload construction."""
    
    def test_payload_shape(self):
        """Test meta and metrics sections."""
        client = MetricdClient(hostname='web01', app='shop')
        packet = client.build_packet({'foo': '1|c', 'bar': '1;2|ms'})
        payload = json.loads(packet)
        assert payload == {
            'meta': {'host': 'web01', 'app': 'shop'},
            'metrics': {'foo': '1|c', 'bar': '1;2|ms'},
        }
    
    def test_extra_meta_merged_and_overrides(self):
        """Test extra meta extends and overrides the base meta."""
        client = MetricdClient(hostname='web01', app='shop')
        payload = json.loads(client.build_packet({}, {'shard': '7', 'app': 'shop-canary'}))
        assert payload['meta'] == {'host': 'web01', 'app': 'shop-canary', 'shard': '7'}
    
    def test_non_ascii_escaped(self):
        """Test the packet is pure ASCII."""
        client = MetricdClient(hostname='hôte', app='app')
        packet = client.build_packet({'naïve': '1|c'})
        packet.decode('ascii')
        assert json.loads(packet)['metrics'] == {'naïve': '1|c'}
    
    def test_non_mapping_metrics_rejected(self):
        """Test build_packet raises for a scalar metrics argument."""
        client = MetricdClient()
        with pytest.raises(TypeError):
            client.build_packet('wrong')
    
    def test_circular_metrics_rejected(self):
        """Test build_packet raises for a circular structure."""
        bad = {'foo': '1|c'}
        bad['bar'] = bad
        with pytest.raises(ValueError):
            MetricdClient().build_packet(bad)


class TestSend:
    """Test best-effort sending."""
    
    def test_send_single_datagram(self, fake_socket):
        """Test one send produces exactly one datagram to host:port."""
        client = MetricdClient('10.0.0.5', 9999, hostname='h', app='a', timeout_s=0.2)
        assert client.send({'foo': '1|c'}) is client
        assert len(fake_socket.sent) == 1
        data, address, timeout = fake_socket.sent[0]
        assert address == ('10.0.0.5', 9999)
        assert timeout == 0.2
        assert json.loads(data)['metrics'] == {'foo': '1|c'}
        assert client.last_result.ok
        assert client.last_result.bytes_sent == len(data)
    
    def test_transport_failure_absorbed(self, fake_socket, caplog):
        """Test socket errors are logged and recorded, never raised."""
        fake_socket.fail_with = OSError('Network is unreachable')
        client = MetricdClient()
        with caplog.at_level(logging.ERROR):
            assert client.send({'foo': '1|c'}) is client
        assert not client.last_result.ok
        assert isinstance(client.last_result.error, OSError)
        assert 'Failure sending metrics to 127.0.0.1:8125' in caplog.text
    
    @pytest.mark.parametrize('metrics', [None, 'wrong', 42])
    def test_bad_metrics_absorbed(self, fake_socket, metrics):
        """Test non-mapping metrics fail without sending anything."""
        client = MetricdClient()
        assert client.send(metrics) is client
        assert fake_socket.sent == []
        assert isinstance(client.last_result.error, TypeError)
    
    def test_circular_metrics_absorbed(self, fake_socket):
        """Test circular metrics fail without sending anything."""
        bad = {'foo': '1|c'}
        bad['bar'] = bad
        client = MetricdClient()
        assert client.send(bad, 'wrong') is client
        assert fake_socket.sent == []
        assert not client.last_result.ok
    
    def test_string_meta_ignored(self, fake_socket, caplog):
        """Test a non-mapping extra meta is ignored but metrics still go out."""
        client = MetricdClient(hostname='h', app='a')
        with caplog.at_level(logging.WARNING):
            client.send({'foo': '1|c'}, 'wrong')
        assert len(fake_socket.sent) == 1
        assert json.loads(fake_socket.sent[0][0])['meta'] == {'host': 'h', 'app': 'a'}
        assert 'Ignoring extra meta' in caplog.text
    
    def test_custom_logger_and_callback(self, fake_socket, caplog):
        """Test failures go to the configured logger and error callback."""
        fake_socket.fail_with = OSError('no route')
        errors = []
        custom = logging.getLogger('custom.sink')
        client = MetricdClient(logger=custom, on_error=errors.append)
        with caplog.at_level(logging.ERROR, logger='custom.sink'):
            client.send({'foo': '1|c'})
        assert errors == [fake_socket.fail_with]
        assert any(r.name == 'custom.sink' for r in caplog.records)
    
    def test_failing_callback_absorbed(self, fake_socket):
        """Test an exception from the error callback does not escape."""
        fake_socket.fail_with = OSError('no route')
        
        def explode(error):
            raise RuntimeError('callback broke')
        
        client = MetricdClient(on_error=explode)
        assert client.send({'foo': '1|c'}) is client
        assert not client.last_result.ok
    
    def test_unroutable_address_never_raises(self):
        """Test a real send to a non-routable address."""
        client = MetricdClient(UNROUTABLE)
        assert client.send({'foo': '1|c'}) is client
        assert client.last_result is not None
    
    def test_unresolvable_host_never_raises(self):
        """Test a host name that cannot be resolved."""
        client = MetricdClient('no-such-host.invalid')
        assert client.send({'foo': '1|c'}) is client
        assert not client.last_result.ok
    
    def test_background_send_uses_copy(self, fake_socket):
        """Test background sends snapshot their inputs."""
        client = MetricdClient(hostname='h', app='a')
        metrics = {'foo': '1|c'}
        thread = client.send_in_background(metrics, {'k': 'v'})
        metrics['foo'] = 'mutated'
        thread.join(timeout=5)
        assert not thread.is_alive()
        assert json.loads(fake_socket.sent[0][0])['metrics'] == {'foo': '1|c'}
    
    def test_ipv4_host_uses_inet_socket(self, fake_socket):
        """Test an IPv4 literal opens an AF_INET socket."""
        MetricdClient('127.0.0.1', 8125).send({'foo': '1|c'})
        assert fake_socket.families == [socket.AF_INET]
    
    def test_ipv6_host_uses_inet6_socket(self, fake_socket):
        """Test an IPv6 literal opens an AF_INET6 socket and reaches sendto."""
        client = MetricdClient('::1', 8125)
        client.send({'foo': '1|c'})
        assert fake_socket.families == [socket.AF_INET6]
        assert client.last_result.ok
        _, address, _ = fake_socket.sent[0]
        assert address[:2] == ('::1', 8125)
