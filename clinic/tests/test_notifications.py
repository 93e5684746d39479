from datetime import timedelta

import pytest
from django.utils import timezone

from clinic.models import Broadcast, Notification
from clinic.services.notifications import (
    format_notification_time,
    get_notification_template,
    notify,
    should_send_notification,
    sort_notifications,
    validate_notification_data,
)
from clinic.tests.helpers import client_for, make_staff

pytestmark = pytest.mark.django_db


def test_role_permissions():
    assert should_send_notification('low_stock_alert', 'nurse')
    assert not should_send_notification('low_stock_alert', 'patient')
    assert should_send_notification('system_alert', 'lab_technician')
    assert not should_send_notification('unknown_type', 'admin')


def test_templates():
    tpl = get_notification_template('low_stock_alert', {'medicineName': 'Insulin', 'quantity': 3})
    assert tpl == {'title': 'Low Stock Alert', 'message': 'Insulin is running low (3 remaining)'}
    assert get_notification_template('custom_message')['title'] == 'Custom Message'


def test_validate_notification_data():
    errors = validate_notification_data({'title': ' ', 'message': 'hi', 'type': 'custom_message'})
    assert errors == ['Title is required', 'Recipient is required', 'Priority is required']


def test_time_ago():
    now = timezone.now()
    assert format_notification_time(now, now) == 'Just now'
    assert format_notification_time(now - timedelta(minutes=5), now) == '5m ago'
    assert format_notification_time(now - timedelta(hours=3), now) == '3h ago'
    assert format_notification_time(now - timedelta(days=2), now) == '2d ago'


def test_notify_skips_roles_not_allowed(patient):
    assert notify(patient.user, 'low_stock_alert', {'medicineName': 'X'}) is None
    assert not Notification.objects.exists()


def test_sort_puts_unread_and_urgent_first(nurse_user):
    low = notify(nurse_user, 'system_alert', priority='low')
    critical = notify(nurse_user, 'system_alert', priority='critical')
    read = notify(nurse_user, 'system_alert', priority='critical')
    read.status = 'read'
    read.save()
    assert [n.id for n in sort_notifications([low, read, critical])] == [critical.id, low.id, read.id]


def test_list_read_and_archive(nurse_user):
    first = notify(nurse_user, 'low_stock_alert', {'medicineName': 'Insulin', 'quantity': 2}, priority='high')
    second = notify(nurse_user, 'system_alert', {'message': 'Maintenance tonight'})
    client = client_for(nurse_user)

    r = client.get('/api/notifications')
    assert r.status_code == 200
    assert [n['id'] for n in r.data['data']] == [first.id, second.id]

    r = client.post(f'/api/notifications/{first.id}/read')
    assert r.data['data']['status'] == 'read'
    assert r.data['data']['readAt']

    r = client.delete(f'/api/notifications/{second.id}')
    assert r.data['data']['status'] == 'archived'
    assert [n['id'] for n in client.get('/api/notifications').data['data']] == [first.id]


def test_cannot_touch_someone_elses_notification(nurse_user, receptionist_user):
    n = notify(nurse_user, 'system_alert')
    r = client_for(receptionist_user).post(f'/api/notifications/{n.id}/read')
    assert r.status_code == 404


def test_read_all_and_summary(nurse_user):
    notify(nurse_user, 'low_stock_alert', {'medicineName': 'A'}, priority='high')
    notify(nurse_user, 'low_stock_alert', {'medicineName': 'B'})
    notify(nurse_user, 'system_alert')
    client = client_for(nurse_user)

    data = client.get('/api/notifications/summary').data['data']
    assert data == {'total': 3, 'unread': 3, 'highPriority': 1,
                    'byType': {'low_stock_alert': 2, 'system_alert': 1}}

    assert client.post('/api/notifications/read-all').data['data']['updated'] == 3
    assert client.get('/api/notifications/summary').data['data']['unread'] == 0


def test_admin_sends_direct_message(admin_user, patient):
    r = client_for(admin_user).post('/api/notifications/send', {
        'recipientId': patient.user.id, 'title': 'Lab closed', 'message': 'The lab is closed on Friday',
        'priority': 'high',
    }, format='json')
    assert r.status_code == 201, r.data
    n = Notification.objects.get(recipient=patient.user)
    assert n.title == 'Lab closed'
    assert n.sender_id == admin_user.id


def test_send_rejects_type_the_role_cannot_receive(admin_user, patient):
    r = client_for(admin_user).post('/api/notifications/send', {
        'recipientId': patient.user.id, 'type': 'low_stock_alert', 'title': 'x', 'message': 'y',
    }, format='json')
    assert r.status_code == 400


def test_only_admin_sends(nurse_user, patient):
    r = client_for(nurse_user).post('/api/notifications/send', {
        'recipientId': patient.user.id, 'title': 'x', 'message': 'y',
    }, format='json')
    assert r.status_code == 403


def test_broadcast_to_role_group(admin_user, nurse_user, receptionist_user):
    other_nurse, _ = make_staff('nurse2', 'nurse')
    r = client_for(admin_user).post('/api/notifications/broadcast', {
        'title': 'Fire drill', 'message': 'Drill at 3pm', 'targetGroup': 'nurse',
    }, format='json')
    assert r.status_code == 201, r.data
    assert r.data['data']['recipientCount'] == 2
    recipients = set(Notification.objects.filter(title='Fire drill').values_list('recipient_id', flat=True))
    assert recipients == {nurse_user.id, other_nurse.id}
    assert Broadcast.objects.count() == 1


def test_broadcast_to_specific_users_needs_ids(admin_user):
    client = client_for(admin_user)
    r = client.post('/api/notifications/broadcast', {'title': 't', 'message': 'm', 'targetGroup': 'specific'},
                    format='json')
    assert r.status_code == 400
    r = client.post('/api/notifications/broadcast', {'title': 't', 'message': 'm', 'targetGroup': 'specific',
                                                     'targetUserIds': [admin_user.id]}, format='json')
    assert r.status_code == 201
    assert r.data['data']['recipientCount'] == 1
