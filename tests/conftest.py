"""
Pytest fixtures for flow engine tests
"""

import pytest
from types import SimpleNamespace
from unittest.mock import AsyncMock

from chatflow.flow_engine.collaborators import HttpResponse
from chatflow.flow_engine.dispatcher import NodeDispatcher
from chatflow.flow_engine.executor import ExecutionEngine
from chatflow.flow_engine.graph import Flow
from chatflow.flow_engine.repositories import InMemoryExecutionRepository, InMemoryFlowRepository
from chatflow.flow_engine.scheduler import InlineScheduler


def node(node_id, node_type, **data):
    return {'id': node_id, 'type': node_type, 'position': {'x': 0, 'y': 0}, 'data': data}


def edge(source, target, handle=None, edge_id=None):
    return {
        'id': edge_id or f'{source}->{target}:{handle or ""}',
        'source': source,
        'target': target,
        'sourceHandle': handle,
    }


def build_flow(nodes, edges, flow_id='flow-1', tenant_id='tenant-1', status='active',
               trigger_config=None, name='Test Flow', version=1):
    return Flow.from_dict({
        'id': flow_id,
        'tenantId': tenant_id,
        'name': name,
        'status': status,
        'version': version,
        'graph': {'nodes': nodes, 'edges': edges},
        'triggerConfig': trigger_config,
    })


@pytest.fixture
def fb():
    """Flow builders: fb.node(...), fb.edge(...), fb.flow(...)"""
    return SimpleNamespace(node=node, edge=edge, flow=build_flow)


@pytest.fixture
def messaging():
    mock = AsyncMock()
    mock.send_outbound_message.return_value = 'msg-1'
    return mock


@pytest.fixture
def contacts():
    return AsyncMock()


@pytest.fixture
def conversations():
    return AsyncMock()


@pytest.fixture
def http():
    mock = AsyncMock()
    mock.request.return_value = HttpResponse(status_code=200, data={'ok': True})
    return mock


@pytest.fixture
def sheets():
    mock = AsyncMock()
    mock.read_range.return_value = [['a', 'b'], ['1', '2']]
    return mock


@pytest.fixture
def dispatcher(messaging, contacts, conversations, http, sheets):
    return NodeDispatcher(
        messaging=messaging,
        contacts=contacts,
        conversations=conversations,
        http=http,
        sheets=sheets,
    )


@pytest.fixture
def flow_repo():
    return InMemoryFlowRepository()


@pytest.fixture
def execution_repo():
    return InMemoryExecutionRepository()


@pytest.fixture
def engine(flow_repo, execution_repo, dispatcher):
    """Engine that runs each loop inline, inside the awaiting call"""
    return ExecutionEngine(flow_repo, execution_repo, dispatcher, scheduler=InlineScheduler())


@pytest.fixture
def app():
    """Flask app on an in-memory SQLite database"""
    from chatflow import create_app
    from chatflow.config import TestConfig
    from chatflow.database import db

    app = create_app(TestConfig)
    with app.app_context():
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()
