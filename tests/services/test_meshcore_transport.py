from types import SimpleNamespace

import pytest
from meshcore import EventType

import services.meshcore_transport as transport_module
from services.meshcore_transport import Channel, MeshTransport, TransportError


def _event(event_type, payload=None):
    return SimpleNamespace(type=event_type, payload=payload)


class FakeCommands:
    def __init__(self, channel_names, send_error=False):
        self._channel_names = channel_names
        self._send_error = send_error
        self.sent = []
        self.channel_queries = []

    async def get_channel(self, index):
        self.channel_queries.append(index)
        if index >= len(self._channel_names):
            return _event(EventType.ERROR, {'reason': 'not_found'})
        return _event('channel_info', {'channel_idx': index, 'channel_name': self._channel_names[index]})

    async def send_chan_msg(self, channel_index, text):
        if self._send_error:
            return _event(EventType.ERROR, {'reason': 'busy'})
        self.sent.append((channel_index, text))
        return _event('msg_sent', {})


class FakeMeshCore:
    instance = None

    def __init__(self, commands):
        self.commands = commands
        self.subscriptions = []
        self.auto_fetching = False
        self.disconnected = False

    @classmethod
    async def create_serial(cls, port, baudrate):
        return cls.instance

    def subscribe(self, event_type, handler):
        self.subscriptions.append((event_type, handler))

    async def start_auto_message_fetching(self):
        self.auto_fetching = True

    async def disconnect(self):
        self.disconnected = True


@pytest.fixture
def fake_meshcore(monkeypatch):
    def install(channel_names=('Public', 'Bitcoin'), send_error=False):
        FakeMeshCore.instance = FakeMeshCore(FakeCommands(list(channel_names), send_error=send_error))
        monkeypatch.setattr(transport_module, 'MeshCore', FakeMeshCore)
        return FakeMeshCore.instance
    return install


@pytest.mark.asyncio
async def test_find_channel_by_name_scans_slots(fake_meshcore):
    node = fake_meshcore(['Public', '', 'Bitcoin'])
    transport = MeshTransport('/dev/ttyUSB0')
    await transport.connect()

    assert transport.connected
    assert await transport.find_channel_by_name('Bitcoin') == Channel(index=2, name='Bitcoin')
    assert node.commands.channel_queries == [0, 1, 2]


@pytest.mark.asyncio
async def test_unknown_channel_stops_at_first_error(fake_meshcore):
    node = fake_meshcore(['Public'])
    transport = MeshTransport('/dev/ttyUSB0')
    await transport.connect()

    assert await transport.find_channel_by_name('Bitcoin') is None
    assert node.commands.channel_queries == [0, 1]


@pytest.mark.asyncio
async def test_send_and_send_error(fake_meshcore):
    node = fake_meshcore()
    transport = MeshTransport('/dev/ttyUSB0')
    await transport.connect()
    await transport.send_channel_text_message(1, 'BTC: 65 000€')
    assert node.commands.sent == [(1, 'BTC: 65 000€')]

    fake_meshcore(send_error=True)
    failing = MeshTransport('/dev/ttyUSB0')
    await failing.connect()
    with pytest.raises(TransportError):
        await failing.send_channel_text_message(1, 'hello')


@pytest.mark.asyncio
async def test_connect_failure_raises_transport_error(monkeypatch):
    class NoNode:
        @classmethod
        async def create_serial(cls, port, baudrate):
            return None

    monkeypatch.setattr(transport_module, 'MeshCore', NoNode)
    transport = MeshTransport('/dev/ttyUSB9')

    with pytest.raises(TransportError):
        await transport.connect()
    assert not transport.connected


@pytest.mark.asyncio
async def test_commands_require_connection():
    with pytest.raises(TransportError):
        await MeshTransport('/dev/ttyUSB0').send_channel_text_message(0, 'x')


@pytest.mark.asyncio
async def test_inbound_messages_are_logged_and_close_disconnects(fake_meshcore, caplog):
    node = fake_meshcore()
    transport = MeshTransport('/dev/ttyUSB0')
    await transport.connect()
    await transport.start_message_logging()

    assert node.auto_fetching
    handlers = dict(node.subscriptions)
    assert set(handlers) == {EventType.CONTACT_MSG_RECV, EventType.CHANNEL_MSG_RECV}

    with caplog.at_level('INFO'):
        await handlers[EventType.CHANNEL_MSG_RECV](_event(EventType.CHANNEL_MSG_RECV, {'text': 'gm'}))
    assert "Received channel message {'text': 'gm'}" in caplog.text

    await transport.close()
    assert node.disconnected
    assert not transport.connected
