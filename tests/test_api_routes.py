import pytest

import app as app_module
from services.ai_gateway import AdvisorUpstreamError, UNAVAILABLE_REPLY


PROTECTED = [
    ('get', '/api/auth/user'),
    ('get', '/api/tasks'),
    ('post', '/api/tasks'),
    ('patch', '/api/tasks/abc'),
    ('delete', '/api/tasks/abc'),
    ('get', '/api/time-blocks'),
    ('get', '/api/time-blocks/week'),
    ('post', '/api/time-blocks'),
    ('get', '/api/inbox'),
    ('post', '/api/inbox/abc/process'),
    ('get', '/api/settings'),
    ('put', '/api/settings'),
    ('get', '/api/dashboard'),
    ('post', '/api/ai/chat'),
]


@pytest.mark.parametrize('method,path', PROTECTED)
def test_endpoints_require_a_session(app, method, path):
    resp = getattr(app.test_client(), method)(path, json={})
    assert resp.status_code == 401
    assert resp.get_json() == {'message': 'Unauthorized'}


def test_login_requires_the_identity_provider_key(app):
    client = app.test_client()
    resp = client.post('/api/login', json={'id': 'user-a'})
    assert resp.status_code == 401
    resp = client.post('/api/login', json={'id': 'user-a'}, headers={'X-API-Key': 'wrong'})
    assert resp.status_code == 401


def test_login_upserts_user_and_opens_session(login_client):
    client = login_client('user-a', firstName='Ada')
    resp = client.get('/api/auth/user')
    assert resp.status_code == 200
    body = resp.get_json()
    assert body['id'] == 'user-a'
    assert body['firstName'] == 'Ada'

    assert client.post('/api/logout').get_json() == {'success': True}
    assert client.get('/api/auth/user').status_code == 401


def test_service_callers_authenticate_with_shared_key_headers(login_client, app):
    login_client('user-a')
    headers = {'X-API-Key': app.config['API_SHARED_KEY'], 'X-User-Id': 'user-a'}
    assert app.test_client().get('/api/tasks', headers=headers).status_code == 200
    headers['X-API-Key'] = 'nope'
    assert app.test_client().get('/api/tasks', headers=headers).status_code == 401


def test_task_crud_flow(client):
    resp = client.post('/api/tasks', json={'title': 'Write report', 'priority': 'high'})
    assert resp.status_code == 201
    task = resp.get_json()
    assert task['status'] == 'todo'
    assert task['userId'] == 'user-a'
    assert task['createdAt'] == task['updatedAt']

    assert [t['id'] for t in client.get('/api/tasks').get_json()] == [task['id']]

    resp = client.patch(f"/api/tasks/{task['id']}", json={'status': 'completed'})
    assert resp.status_code == 200
    assert resp.get_json()['status'] == 'completed'
    assert resp.get_json()['completedAt'] is None
    assert resp.get_json()['title'] == 'Write report'

    assert client.delete(f"/api/tasks/{task['id']}").get_json() == {'success': True}
    assert client.delete(f"/api/tasks/{task['id']}").get_json() == {'success': True}
    assert client.get(f"/api/tasks/{task['id']}").status_code == 404


def test_client_supplied_owner_is_ignored(client):
    task = client.post('/api/tasks', json={'title': 'Mine', 'userId': 'user-b'}).get_json()
    assert task['userId'] == 'user-a'

    resp = client.patch(f"/api/tasks/{task['id']}", json={'userId': 'user-b'})
    assert resp.status_code == 200
    assert resp.get_json()['userId'] == 'user-a'


def test_users_cannot_reach_each_others_rows(login_client):
    alice = login_client('user-a')
    bob = login_client('user-b')
    item = alice.post('/api/inbox', json={'content': 'secret idea'}).get_json()

    assert bob.get('/api/inbox').get_json() == []
    assert bob.get(f"/api/inbox/{item['id']}").status_code == 404
    assert bob.patch(f"/api/inbox/{item['id']}", json={'content': 'mine now'}).status_code == 404
    assert bob.post(f"/api/inbox/{item['id']}/process").status_code == 404
    assert bob.delete(f"/api/inbox/{item['id']}").get_json() == {'success': True}

    still_there = alice.get(f"/api/inbox/{item['id']}").get_json()
    assert still_there['content'] == 'secret idea'
    assert still_there['isProcessed'] is False


def test_validation_errors_return_400_with_fields(client):
    resp = client.post('/api/tasks', json={'title': '', 'priority': 'urgent'})
    assert resp.status_code == 400
    body = resp.get_json()
    assert body['message']
    assert set(body['errors']) == {'title', 'priority'}

    resp = client.post('/api/time-blocks', data='not json', content_type='application/json')
    assert resp.status_code == 400
    assert set(resp.get_json()['errors']) == {'title', 'startTime', 'endTime'}


def test_invalid_patch_writes_nothing(client):
    task = client.post('/api/tasks', json={'title': 'Stable'}).get_json()
    resp = client.patch(f"/api/tasks/{task['id']}", json={'title': 'Changed', 'status': 'bogus'})
    assert resp.status_code == 400
    assert client.get(f"/api/tasks/{task['id']}").get_json()['title'] == 'Stable'


def test_patch_missing_row_is_404(client):
    resp = client.patch('/api/time-blocks/does-not-exist', json={'title': 'x'})
    assert resp.status_code == 404
    assert resp.get_json() == {'message': 'Time block not found'}


def test_time_blocks_list_sorted_and_week_projection(client):
    client.post('/api/time-blocks', json={
        'title': 'Review', 'startTime': '2024-01-15T09:45:00', 'endTime': '2024-01-15T10:15:00',
    })
    client.post('/api/time-blocks', json={
        'title': 'Standup', 'startTime': '2024-01-15T09:00:00', 'endTime': '2024-01-15T10:30:00',
    })
    client.post('/api/time-blocks', json={
        'title': 'Next week', 'startTime': '2024-01-22T09:00:00', 'endTime': '2024-01-22T10:00:00',
    })

    titles = [b['title'] for b in client.get('/api/time-blocks').get_json()]
    assert titles == ['Standup', 'Review', 'Next week']

    week = client.get('/api/time-blocks/week?date=2024-01-17&weekStartsOn=1').get_json()
    assert week['weekStart'] == '2024-01-15'
    assert len(week['days']) == 7
    monday = week['days'][0]
    assert monday['date'] == '2024-01-15'
    assert [(p['block']['title'], p['hourRow'], p['topOffset'], p['heightFraction'])
            for p in monday['placements']] == [('Standup', 9, 0.0, 1.5), ('Review', 9, 0.75, 0.5)]
    assert all(day['placements'] == [] for day in week['days'][1:])


def test_week_projection_uses_saved_week_start(client):
    client.put('/api/settings', json={'weekStartsOn': 0})
    week = client.get('/api/time-blocks/week?date=2024-01-17').get_json()
    assert week['weekStartsOn'] == 0
    assert week['weekStart'] == '2024-01-14'

    assert client.get('/api/time-blocks/week?date=17-01-2024').status_code == 400
    assert client.get('/api/time-blocks/week?weekStartsOn=5').status_code == 400


def test_time_block_may_link_only_own_task(login_client):
    alice = login_client('user-a')
    bob = login_client('user-b')
    bobs_task = bob.post('/api/tasks', json={'title': 'Bob task'}).get_json()

    resp = alice.post('/api/time-blocks', json={
        'title': 'Sneaky', 'taskId': bobs_task['id'],
        'startTime': '2024-01-15T09:00:00', 'endTime': '2024-01-15T10:00:00',
    })
    assert resp.status_code == 400
    assert resp.get_json()['errors'] == {'taskId': 'Task not found'}


def test_inbox_process(client):
    item = client.post('/api/inbox', json={'content': 'Call dentist'}).get_json()
    assert item['isProcessed'] is False
    processed = client.post(f"/api/inbox/{item['id']}/process").get_json()
    assert processed['isProcessed'] is True


def test_settings_defaults_then_upsert(client):
    defaults = client.get('/api/settings').get_json()
    assert defaults['id'] is None
    assert defaults['weekStartsOn'] == 1
    assert defaults['timeZone'] == 'UTC'

    first = client.put('/api/settings', json={'timeZone': 'America/New_York', 'workStartTime': '08:00'}).get_json()
    second = client.put('/api/settings', json={'workStartTime': '07:30', 'userId': 'user-b'}).get_json()
    assert second['id'] == first['id']
    assert second['userId'] == 'user-a'
    assert second['workStartTime'] == '07:30'
    assert second['timeZone'] == 'America/New_York'
    assert client.get('/api/settings').get_json() == second

    assert client.put('/api/settings', json={'timeZone': 'Nowhere/Land'}).status_code == 400


def test_dashboard_counts(client):
    client.post('/api/tasks', json={'title': 'Open'})
    done = client.post('/api/tasks', json={'title': 'Done'}).get_json()
    client.patch(f"/api/tasks/{done['id']}", json={'status': 'completed'})
    client.post('/api/inbox', json={'content': 'idea'})

    summary = client.get('/api/dashboard').get_json()
    assert summary['openTasks'] == 1
    assert summary['completionRate'] == 50
    assert summary['inboxUnprocessed'] == 1
    assert [t['title'] for t in summary['upcomingTasks']] == ['Open']


def test_ai_chat_requires_message(client):
    resp = client.post('/api/ai/chat', json={})
    assert resp.status_code == 400
    assert resp.get_json()['message'] == 'Message is required'


def test_ai_chat_without_key_returns_fallback_text(client):
    resp = client.post('/api/ai/chat', json={'message': 'How should I plan today?'})
    assert resp.status_code == 200
    assert resp.get_json() == {'response': UNAVAILABLE_REPLY}


def test_ai_chat_returns_suggestion(client, monkeypatch):
    seen = {}

    def fake_suggestion(message, context=None, logger=None):
        seen['message'] = message
        seen['context'] = context
        return 'Block two hours for deep work.'

    monkeypatch.setattr(app_module, 'get_suggestion', fake_suggestion)
    client.post('/api/tasks', json={'title': 'Finish slides'})

    resp = client.post('/api/ai/chat', json={'message': ' Help me focus '})
    assert resp.get_json() == {'response': 'Block two hours for deep work.'}
    assert seen['message'] == 'Help me focus'
    assert 'Finish slides' in seen['context']


def test_ai_upstream_failure_is_502(client, monkeypatch):
    def failing(message, context=None, logger=None):
        raise AdvisorUpstreamError()

    monkeypatch.setattr(app_module, 'get_suggestion', failing)
    resp = client.post('/api/ai/chat', json={'message': 'hi'})
    assert resp.status_code == 502
    assert resp.get_json() == {'message': 'Failed to get AI response'}


def test_unexpected_errors_are_masked(client, monkeypatch):
    def explode(user_id):
        raise RuntimeError('database password is hunter2')

    monkeypatch.setattr(app_module.storage.tasks, 'list', explode)
    resp = client.get('/api/tasks')
    assert resp.status_code == 500
    assert resp.get_json() == {'message': 'Internal Server Error'}


def test_unknown_route_is_json_404(client):
    resp = client.get('/api/nope')
    assert resp.status_code == 404
    assert 'message' in resp.get_json()


def test_text_fields_are_stored_as_sent(client):
    task = client.post('/api/tasks', json={'title': '  Plan  ', 'description': ''}).get_json()
    fetched = client.get(f"/api/tasks/{task['id']}").get_json()
    assert fetched['title'] == '  Plan  '
    assert fetched['description'] == ''

    assert client.post('/api/inbox', json={'content': '   '}).status_code == 400


def test_timestamps_round_trip_as_utc(client):
    block = client.post('/api/time-blocks', json={
        'title': 'Focus', 'startTime': '2024-01-15T09:00:00.000Z', 'endTime': '2024-01-15T11:30:00+02:00',
    }).get_json()
    fetched = client.get(f"/api/time-blocks/{block['id']}").get_json()
    assert fetched['startTime'] == '2024-01-15T09:00:00Z'
    assert fetched['endTime'] == '2024-01-15T09:30:00Z'
    assert fetched['createdAt'].endswith('Z')
