"""
Tests for the flows, triggers and health HTTP APIs
"""

import asyncio
import pytest
from datetime import datetime, timedelta

from chatflow.flow_engine.execution import FlowExecution
from chatflow.flow_engine.scheduler import InlineScheduler
from chatflow.services.flow_execution_service import EXTENSION_KEY, FlowExecutionService
from chatflow.services.sql_repositories import SqlExecutionRepository, SqlFlowRepository


@pytest.fixture
def service(app, dispatcher):
    service = FlowExecutionService(dispatcher=dispatcher, scheduler=InlineScheduler())
    app.extensions[EXTENSION_KEY] = service
    return service


@pytest.fixture
def email_flow(app, fb):
    flow = fb.flow(
        [
            fb.node('s', 'start'),
            fb.node('i', 'input', variableName='email', validationType='email'),
            fb.node('m', 'message', message='Thanks {{email}}'),
            fb.node('e', 'end'),
        ],
        [fb.edge('s', 'i'), fb.edge('i', 'm'), fb.edge('m', 'e')],
        trigger_config={'type': 'keyword', 'keywords': ['newsletter']},
    )
    SqlFlowRepository().add(flow)
    return flow


def _start(client, flow_id='flow-1', **body):
    payload = {'conversationId': 'conv-1', 'contactId': 'contact-1'}
    payload.update(body)
    return client.post(f'/api/v1/flows/{flow_id}/execute', json=payload)


class TestFlowsApi:
    """Test /api/v1/flows"""

    def test_execute_and_resume(self, client, service, email_flow, messaging):
        """Test starting, resuming and reading an execution"""
        response = _start(client, context={'source': 'api'})
        assert response.status_code == 201
        execution = response.get_json()
        assert execution['status'] == 'paused'
        assert execution['currentNodeId'] == 'i'
        assert execution['context'] == {'source': 'api'}

        response = client.post(f"/api/v1/flows/executions/{execution['id']}/resume", json={'input': 'a@b.com'})
        assert response.status_code == 200
        assert response.get_json()['status'] == 'completed'
        messaging.send_outbound_message.assert_awaited_once_with('tenant-1', 'conv-1', 'Thanks a@b.com')

        response = client.get(f"/api/v1/flows/executions/{execution['id']}")
        assert response.get_json()['executionPath'] == ['s', 'i', 'm', 'e']

    def test_execute_unknown_flow(self, client, service):
        """Test 404 for an unknown flow"""
        response = _start(client, flow_id='missing')

        assert response.status_code == 404
        assert response.get_json() == {'error': 'Flow not found: missing'}

    def test_execute_invalid_flow(self, client, service, fb):
        """Test 422 for a flow without start node"""
        SqlFlowRepository().add(fb.flow([fb.node('m', 'message')], []))

        response = _start(client)

        assert response.status_code == 422
        assert 'no start node' in response.get_json()['error']

    def test_resume_requires_input(self, client, service, email_flow):
        """Test 400 without input"""
        execution = _start(client).get_json()

        response = client.post(f"/api/v1/flows/executions/{execution['id']}/resume", json={})

        assert response.status_code == 400

    def test_resume_completed_conflicts(self, client, service, email_flow):
        """Test 409 when resuming a terminal execution"""
        execution = _start(client).get_json()
        client.post(f"/api/v1/flows/executions/{execution['id']}/cancel")

        response = client.post(f"/api/v1/flows/executions/{execution['id']}/resume", json={'input': 'x'})

        assert response.status_code == 409

    def test_cancel(self, client, service, email_flow):
        """Test cancel, twice"""
        execution = _start(client).get_json()

        first = client.post(f"/api/v1/flows/executions/{execution['id']}/cancel")
        second = client.post(f"/api/v1/flows/executions/{execution['id']}/cancel")

        assert first.status_code == 200
        assert first.get_json()['status'] == 'failed'
        assert first.get_json()['errorMessage'] == 'Cancelled by user'
        assert second.get_json() == first.get_json()

    def test_unknown_execution(self, client, service):
        """Test 404 for an unknown execution"""
        assert client.get('/api/v1/flows/executions/missing').status_code == 404
        assert client.post('/api/v1/flows/executions/missing/cancel').status_code == 404
        assert client.get('/api/v1/flows/executions/missing/logs').status_code == 404

    def test_logs_and_replay(self, client, service, email_flow):
        """Test the logs and replay views of an execution"""
        execution = _start(client).get_json()
        client.post(f"/api/v1/flows/executions/{execution['id']}/resume", json={'input': 'a@b.com'})

        logs = client.get(f"/api/v1/flows/executions/{execution['id']}/logs").get_json()
        replay = client.get(f"/api/v1/flows/executions/{execution['id']}/replay").get_json()

        assert logs['status'] == 'completed'
        assert len(logs['steps']) == 5
        assert replay['flow']['name'] == 'Test Flow'
        assert [step['nodeId'] for step in replay['steps']] == ['s', 'i', 'm', 'e']

    def test_conversation_executions(self, client, service, email_flow):
        """Test listing executions of a conversation"""
        _start(client)
        _start(client)

        response = client.get('/api/v1/flows/conversations/conv-1/executions')

        assert response.get_json()['total'] == 2

    def test_dry_run(self, client, service, email_flow, messaging):
        """Test the sandbox endpoint"""
        response = client.post('/api/v1/flows/flow-1/test', json={'testData': {'email': 'a@b.com'}})

        report = response.get_json()
        assert response.status_code == 200
        assert report['success'] is True
        assert report['finalContext']['email'] == 'a@b.com'
        messaging.send_outbound_message.assert_not_awaited()

    def test_validate(self, client, service, email_flow):
        """Test the validation endpoint"""
        response = client.get('/api/v1/flows/flow-1/validate')

        assert response.get_json() == {'flowId': 'flow-1', 'valid': True, 'errors': []}


class TestTriggersApi:
    """Test /api/v1/triggers"""

    def test_message_triggers_then_resumes(self, client, service, email_flow):
        """Test a keyword starts the flow and the next message answers it"""
        body = {'tenantId': 'tenant-1', 'conversationId': 'conv-1', 'contactId': 'contact-1'}

        first = client.post('/api/v1/triggers/messages', json=dict(body, message='newsletter')).get_json()
        second = client.post('/api/v1/triggers/messages', json=dict(body, message='a@b.com')).get_json()

        assert first['triggered'] is True
        assert first['execution']['status'] == 'paused'
        assert second['execution']['id'] == first['execution']['id']
        assert second['execution']['status'] == 'completed'

    def test_message_without_match(self, client, service, email_flow):
        """Test an unmatched message starts nothing"""
        response = client.post('/api/v1/triggers/messages', json={
            'tenantId': 'tenant-1', 'conversationId': 'conv-1', 'contactId': 'contact-1', 'message': 'hello',
        })

        assert response.get_json() == {'triggered': False, 'execution': None}

    def test_message_missing_fields(self, client, service):
        """Test 400 on incomplete events"""
        response = client.post('/api/v1/triggers/messages', json={'tenantId': 'tenant-1'})

        assert response.status_code == 400
        assert 'conversationId' in response.get_json()['error']

    def test_welcome_without_flow(self, client, service, email_flow):
        """Test welcome with no welcome flow"""
        response = client.post('/api/v1/triggers/welcome', json={
            'tenantId': 'tenant-1', 'conversationId': 'conv-1', 'contactId': 'contact-1',
        })

        assert response.get_json()['triggered'] is False

    def test_webhook(self, client, service, fb):
        """Test a webhook payload matched against webhook flows"""
        SqlFlowRepository().add(fb.flow(
            [fb.node('s', 'start')], [], flow_id='hook',
            trigger_config={'type': 'webhook', 'conditions': {'event': 'order.paid'}},
        ))

        matched = client.post('/api/v1/triggers/webhooks/tenant-1', json={'event': 'order.paid'})
        unmatched = client.post('/api/v1/triggers/webhooks/tenant-1', json={'event': 'order.refunded'})

        assert matched.get_json() == {'matched': True, 'flowId': 'hook'}
        assert unmatched.get_json() == {'matched': False, 'flowId': None}


class TestHealth:

    def test_health(self, client, monkeypatch):
        """Test the health check reports the database and scheduler"""
        monkeypatch.delenv('TEMPORAL_ADDRESS', raising=False)

        response = client.get('/api/health')

        assert response.status_code == 200
        assert response.get_json()['status'] == 'healthy'
        assert response.get_json()['scheduler'] == 'inline'
        assert response.get_json()['executions'] == {'running': 0, 'paused': 0, 'overdueDelays': 0}

    def test_health_reports_backlog(self, client, service, email_flow):
        """Test open executions and overdue delays are counted"""
        _start(client)
        overdue = FlowExecution(
            flow_id='flow-1',
            conversation_id='conv-2',
            contact_id='contact-2',
            tenant_id='tenant-1',
            current_node_id='m',
            execution_path=['s', 'i', 'm'],
            flow_snapshot=email_flow.snapshot(),
            resume_at=datetime.utcnow() - timedelta(minutes=5),
        )
        asyncio.run(SqlExecutionRepository().create(overdue))

        response = client.get('/api/health')

        assert response.get_json()['executions'] == {'running': 1, 'paused': 1, 'overdueDelays': 1}


class TestResumeDueCommand:

    def test_resume_due(self, app, service, fb):
        """Test the CLI re-dispatches due delayed executions"""
        flow = fb.flow(
            [fb.node('s', 'start'), fb.node('d', 'delay', delaySeconds=60), fb.node('e', 'end')],
            [fb.edge('s', 'd'), fb.edge('d', 'e')],
            flow_id='delayed',
        )
        SqlFlowRepository().add(flow)
        execution = FlowExecution(
            flow_id='delayed',
            conversation_id='conv-1',
            contact_id='contact-1',
            tenant_id='tenant-1',
            current_node_id='e',
            execution_path=['s', 'd', 'e'],
            flow_snapshot=flow.snapshot(),
            resume_at=datetime.utcnow() - timedelta(seconds=1),
        )
        asyncio.run(SqlExecutionRepository().create(execution))

        result = app.test_cli_runner().invoke(args=['flows', 'resume-due'])

        assert 'Re-dispatched 1 execution(s)' in result.output
        stored = asyncio.run(SqlExecutionRepository().get(execution.id))
        assert stored.status == 'completed'
