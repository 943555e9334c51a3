"""
Tests for flow triggers
"""

import pytest
from unittest.mock import AsyncMock

from chatflow.flow_engine.execution import ExecutionStatus
from chatflow.flow_engine.trigger import FlowTriggerService, match_keywords, match_webhook_conditions


def _keyword_flow(fb, flow_id, keywords, status='active', tenant_id='tenant-1'):
    return fb.flow(
        [fb.node('s', 'start'), fb.node('e', 'end')],
        [fb.edge('s', 'e')],
        flow_id=flow_id,
        status=status,
        tenant_id=tenant_id,
        trigger_config={'type': 'keyword', 'keywords': keywords},
    )


@pytest.fixture
def triggers(flow_repo, engine):
    return FlowTriggerService(flow_repo, engine)


class TestMatchKeywords:

    @pytest.mark.parametrize('keywords,message,expected', [
        (['pricing'], 'Pricing', True),
        (['pricing'], '  pricing  ', True),
        (['pricing'], 'what is your PRICING?', True),
        (['price'], 'pricing please', False),
        (['c++'], 'I like c++', False),
        (['hello world'], 'well hello world!', True),
        ([], 'pricing', False),
        (['  '], 'pricing', False),
        (['pricing'], '', False),
    ])
    def test_match_keywords(self, keywords, message, expected):
        """Test exact and whole-word case-insensitive matching"""
        assert match_keywords(keywords, message) is expected


class TestMatchWebhookConditions:

    def test_no_conditions_match(self):
        """Test that an empty condition set matches any payload"""
        assert match_webhook_conditions(None, {'a': 1}) is True
        assert match_webhook_conditions({}, {}) is True

    def test_all_keys_must_match(self):
        """Test exact equality on every declared key"""
        conditions = {'event': 'order.paid', 'store': 'br'}

        assert match_webhook_conditions(conditions, {'event': 'order.paid', 'store': 'br', 'x': 1}) is True
        assert match_webhook_conditions(conditions, {'event': 'order.paid'}) is False
        assert match_webhook_conditions(conditions, {'event': 'order.paid', 'store': 'us'}) is False


class TestFlowTriggerService:
    """Test event to flow selection"""

    @pytest.mark.asyncio
    async def test_first_matching_flow_wins(self, triggers, flow_repo, fb):
        """Test only the first matching active flow starts"""
        flow_repo.add(_keyword_flow(fb, 'flow-a', ['pricing']))
        flow_repo.add(_keyword_flow(fb, 'flow-b', ['pricing', 'plans']))

        execution = await triggers.handle_incoming_message('tenant-1', 'conv-1', 'contact-1', 'pricing')

        assert execution.flow_id == 'flow-a'
        assert execution.context['triggerMessage'] == 'pricing'
        assert len(await triggers.engine.get_executions_by_conversation('conv-1')) == 1

    @pytest.mark.asyncio
    async def test_second_flow_matches_own_keyword(self, triggers, flow_repo, fb):
        """Test the scan continues past non-matching flows"""
        flow_repo.add(_keyword_flow(fb, 'flow-a', ['pricing']))
        flow_repo.add(_keyword_flow(fb, 'flow-b', ['plans']))

        execution = await triggers.handle_incoming_message('tenant-1', 'conv-1', 'contact-1', 'show me the plans')

        assert execution.flow_id == 'flow-b'

    @pytest.mark.asyncio
    async def test_inactive_and_foreign_flows_ignored(self, triggers, flow_repo, fb):
        """Test drafts and other tenants' flows never trigger"""
        flow_repo.add(_keyword_flow(fb, 'flow-a', ['pricing'], status='draft'))
        flow_repo.add(_keyword_flow(fb, 'flow-b', ['pricing'], tenant_id='tenant-2'))

        assert await triggers.handle_incoming_message('tenant-1', 'conv-1', 'contact-1', 'pricing') is None

    @pytest.mark.asyncio
    async def test_welcome_message(self, triggers, flow_repo, fb):
        """Test the first active welcome flow starts"""
        flow_repo.add(_keyword_flow(fb, 'flow-a', ['pricing']))
        flow_repo.add(fb.flow(
            [fb.node('s', 'start'), fb.node('e', 'end')], [fb.edge('s', 'e')],
            flow_id='welcome', trigger_config={'type': 'welcome'},
        ))

        execution = await triggers.handle_welcome_message('tenant-1', 'conv-1', 'contact-1')

        assert execution.flow_id == 'welcome'
        assert execution.context['isWelcome'] is True

    @pytest.mark.asyncio
    async def test_no_welcome_flow(self, triggers, flow_repo, fb):
        """Test no welcome flow means nothing starts"""
        flow_repo.add(_keyword_flow(fb, 'flow-a', ['pricing']))

        assert await triggers.handle_welcome_message('tenant-1', 'conv-1', 'contact-1') is None

    @pytest.mark.asyncio
    async def test_manual_trigger(self, triggers, flow_repo, fb):
        """Test manual start with a context"""
        flow_repo.add(_keyword_flow(fb, 'flow-a', ['pricing']))

        execution = await triggers.trigger_manual_flow('flow-a', 'conv-1', 'contact-1', {'source': 'agent'})

        assert execution.status == ExecutionStatus.COMPLETED.value
        assert execution.context == {'source': 'agent'}

    @pytest.mark.asyncio
    async def test_webhook_match_without_starter(self, triggers, flow_repo, fb):
        """Test a webhook match is reported but starts nothing"""
        flow_repo.add(fb.flow(
            [fb.node('s', 'start')], [], flow_id='hook',
            trigger_config={'type': 'webhook', 'conditions': {'event': 'order.paid'}},
        ))

        flow = await triggers.handle_webhook_trigger('tenant-1', {'event': 'order.paid'})

        assert flow.id == 'hook'
        assert await triggers.handle_webhook_trigger('tenant-1', {'event': 'order.refunded'}) is None

    @pytest.mark.asyncio
    async def test_webhook_match_with_starter(self, flow_repo, engine, fb):
        """Test a configured starter receives the matched flow and payload"""
        starter = AsyncMock()
        triggers = FlowTriggerService(flow_repo, engine, webhook_execution_starter=starter)
        flow_repo.add(fb.flow(
            [fb.node('s', 'start')], [], flow_id='hook', trigger_config={'type': 'webhook'},
        ))

        flow = await triggers.handle_webhook_trigger('tenant-1', {'event': 'anything'})

        starter.assert_awaited_once_with(flow, {'event': 'anything'})

    @pytest.mark.asyncio
    async def test_inbound_message_resumes_paused_execution(self, triggers, flow_repo, fb):
        """Test an inbound reply resumes the paused execution instead of triggering"""
        flow_repo.add(fb.flow(
            [fb.node('s', 'start'), fb.node('i', 'input', variableName='answer'), fb.node('e', 'end')],
            [fb.edge('s', 'i'), fb.edge('i', 'e')],
            flow_id='survey',
            trigger_config={'type': 'keyword', 'keywords': ['survey']},
        ))

        paused = await triggers.route_inbound_message('tenant-1', 'conv-1', 'contact-1', 'survey')
        assert paused.status == ExecutionStatus.PAUSED.value

        resumed = await triggers.route_inbound_message('tenant-1', 'conv-1', 'contact-1', 'survey')

        assert resumed.id == paused.id
        assert resumed.status == ExecutionStatus.COMPLETED.value
        assert resumed.context['answer'] == 'survey'

    @pytest.mark.asyncio
    async def test_inbound_message_without_match(self, triggers):
        """Test an unmatched message with no paused execution does nothing"""
        assert await triggers.route_inbound_message('tenant-1', 'conv-1', 'contact-1', 'hi') is None
