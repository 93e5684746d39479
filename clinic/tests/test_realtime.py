import pytest
from asgiref.sync import async_to_sync
from channels.db import database_sync_to_async
from channels.layers import get_channel_layer
from channels.testing import WebsocketCommunicator
from rest_framework.authtoken.models import Token
from rest_framework_simplejwt.tokens import RefreshToken

from clinic.realtime.events import UPDATES_GROUP, broadcast_refresh
from clinic.services.notifications import notify
from hms.asgi import application


@pytest.fixture
def fresh_layer(settings):
    # a new in-memory layer bound to the event loop of the test
    settings.CHANNEL_LAYERS = {'default': {'BACKEND': 'channels.layers.InMemoryChannelLayer'}}


def listen(group):
    layer = get_channel_layer()
    channel = async_to_sync(layer.new_channel)()
    async_to_sync(layer.group_add)(group, channel)
    return layer, channel


@pytest.mark.django_db
def test_refresh_event_reaches_updates_group():
    layer, channel = listen(UPDATES_GROUP)
    broadcast_refresh(['appointments', 'kpis'])
    event = async_to_sync(layer.receive)(channel)
    assert event['type'] == 'broadcast.refresh'
    assert event['keys'] == ['appointments', 'kpis']


@pytest.mark.django_db
def test_notification_is_pushed_to_recipient_group(nurse_user):
    layer, channel = listen(f'notifications.{nurse_user.id}')
    n = notify(nurse_user, 'system_alert', {'message': 'Generator test at noon'})
    event = async_to_sync(layer.receive)(channel)
    assert event['type'] == 'notification.message'
    assert event['notification']['id'] == n.id
    assert event['notification']['message'] == 'Generator test at noon'


def notification_socket(query, user=None):
    """Connect to the notification stream; push one notice to ``user`` when connected."""
    async def scenario():
        communicator = WebsocketCommunicator(application, f'/ws/notifications/?{query}')
        connected, code = await communicator.connect()
        if not connected:
            return connected, code, None
        await database_sync_to_async(notify)(user, 'system_alert', {'message': 'Ward round at four'})
        message = await communicator.receive_json_from(timeout=2)
        await communicator.disconnect()
        return connected, code, message

    return async_to_sync(scenario)()


@pytest.mark.django_db(transaction=True)
def test_notification_socket_accepts_jwt(fresh_layer, nurse_user):
    access = RefreshToken.for_user(nurse_user).access_token
    connected, _, message = notification_socket(f'token={access}', nurse_user)
    assert connected
    assert message['type'] == 'notification'
    assert message['notification']['message'] == 'Ward round at four'


@pytest.mark.django_db(transaction=True)
def test_notification_socket_accepts_api_token(fresh_layer, nurse_user):
    token = Token.objects.create(user=nurse_user)
    connected, _, message = notification_socket(f'token={token.key}', nurse_user)
    assert connected
    assert message['notification']['recipientId'] == nurse_user.id


@pytest.mark.django_db(transaction=True)
@pytest.mark.parametrize('query', ['', 'token=not-a-token'])
def test_notification_socket_refuses_anonymous(fresh_layer, query):
    connected, code, _ = notification_socket(query)
    assert not connected
    assert code == 4401


@pytest.mark.django_db(transaction=True)
def test_inactive_user_token_is_refused(fresh_layer, nurse_user):
    token = Token.objects.create(user=nurse_user)
    nurse_user.is_active = False
    nurse_user.save(update_fields=['is_active'])
    connected, code, _ = notification_socket(f'token={token.key}')
    assert not connected
    assert code == 4401
