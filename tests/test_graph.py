"""
Tests for FlowGraph and validate_graph
"""

import pytest

from chatflow.flow_engine.exceptions import NodeNotFound
from chatflow.flow_engine.graph import FlowGraph, blocking_errors, validate_graph


def _graph(fb, nodes, edges):
    return FlowGraph.from_dict({'nodes': nodes, 'edges': edges})


class TestFlowGraphLookup:
    """Test node lookup and edge filtering"""

    def test_find_node(self, fb):
        """find_node returns the node with that id"""
        graph = _graph(fb, [fb.node('s', 'start'), fb.node('m', 'message', message='hi')], [])

        assert graph.find_node('m').data == {'message': 'hi'}

    def test_find_node_missing_raises(self, fb):
        """find_node raises NodeNotFound for an unknown id"""
        graph = _graph(fb, [fb.node('s', 'start')], [])

        with pytest.raises(NodeNotFound):
            graph.find_node('nope')

    def test_outgoing_edges_without_handle_matches_default_exit(self, fb):
        """No handle matches untagged edges and edges tagged "default" only"""
        graph = _graph(fb, [fb.node('c', 'condition'), fb.node('a', 'end'), fb.node('b', 'end'), fb.node('d', 'end')], [
            fb.edge('c', 'a', 'r1'),
            fb.edge('c', 'b', 'default'),
            fb.edge('c', 'd'),
        ])

        targets = [e.target for e in graph.outgoing_edges('c')]

        assert targets == ['b', 'd']

    def test_outgoing_edges_with_handle(self, fb):
        """An explicit handle matches that tag exactly"""
        graph = _graph(fb, [fb.node('c', 'condition'), fb.node('a', 'end'), fb.node('b', 'end')], [
            fb.edge('c', 'a', 'r1'),
            fb.edge('c', 'b', 'default'),
        ])

        assert [e.target for e in graph.outgoing_edges('c', 'r1')] == ['a']

    def test_follow_explicit_handle_without_edge(self, fb):
        """Following a handle with no edge yields None"""
        graph = _graph(fb, [fb.node('c', 'condition'), fb.node('a', 'end')], [fb.edge('c', 'a', 'r1')])

        assert graph.follow('c', 'default') is None

    def test_follow_default_never_takes_error_edge(self, fb):
        """The default exit falls back to any edge except the error edge"""
        graph = _graph(fb, [fb.node('api', 'apiRequest'), fb.node('bad', 'end')], [
            fb.edge('api', 'bad', 'error'),
        ])

        assert graph.follow('api') is None


class TestValidateGraph:
    """Test graph validation"""

    def test_valid_graph(self, fb):
        """A start node wired to an end node is valid"""
        graph = _graph(fb, [fb.node('s', 'start'), fb.node('e', 'end')], [fb.edge('s', 'e')])

        assert validate_graph(graph) == []

    def test_missing_start(self, fb):
        """A graph without start node is rejected"""
        graph = _graph(fb, [fb.node('m', 'message')], [])

        errors = blocking_errors(validate_graph(graph))

        assert [e.code for e in errors] == ['missing_start']

    def test_multiple_start(self, fb):
        """Two start nodes are rejected"""
        graph = _graph(fb, [fb.node('s1', 'start'), fb.node('s2', 'start')], [])

        codes = [e.code for e in blocking_errors(validate_graph(graph))]

        assert 'multiple_start' in codes

    def test_dangling_edge(self, fb):
        """Edges must reference existing nodes"""
        graph = _graph(fb, [fb.node('s', 'start')], [fb.edge('s', 'ghost', edge_id='e1')])

        errors = blocking_errors(validate_graph(graph))

        assert errors[0].code == 'dangling_edge'
        assert errors[0].edge_id == 'e1'

    def test_duplicate_node_id(self, fb):
        """Node ids are unique within a flow"""
        graph = _graph(fb, [fb.node('s', 'start'), fb.node('x', 'end'), fb.node('x', 'end')], [fb.edge('s', 'x')])

        codes = [e.code for e in blocking_errors(validate_graph(graph))]

        assert codes == ['duplicate_node_id']

    def test_unreachable_node_is_not_blocking(self, fb):
        """Unreachable nodes are reported but do not block execution"""
        graph = _graph(fb, [fb.node('s', 'start'), fb.node('e', 'end'), fb.node('orphan', 'message')],
                       [fb.edge('s', 'e')])

        errors = validate_graph(graph)

        assert [e.code for e in errors] == ['unreachable_node']
        assert blocking_errors(errors) == []


class TestFlowSnapshot:
    """Test flow (de)serialization used for pinned snapshots"""

    def test_snapshot_is_detached_copy(self, fb):
        """Mutating a snapshot does not change the flow"""
        flow = fb.flow([fb.node('s', 'start', label='Begin')], [])

        snapshot = flow.snapshot()
        snapshot['graph']['nodes'][0]['data']['label'] = 'Changed'

        assert flow.graph.find_node('s').label == 'Begin'

    def test_from_dict_accepts_flow_data(self):
        """Flows stored with a flowData key load the same graph"""
        from chatflow.flow_engine.graph import Flow

        flow = Flow.from_dict({
            'id': 'f', 'tenantId': 't', 'name': 'n',
            'flowData': {'nodes': [{'id': 's', 'type': 'start', 'data': {}}], 'edges': []},
        })

        assert flow.graph.start_node().id == 's'
