"""
Tests for VariableResolver
"""

import pytest
from chatflow.flow_engine.variable_resolver import VariableResolver, interpolate


class TestInterpolate:
    """Test {{path}} interpolation"""

    def test_simple_variable(self):
        """Test replacing a top level variable"""
        assert interpolate('Hi {{name}}', {'name': 'Ana'}) == 'Hi Ana'

    def test_nested_variable(self):
        """Test replacing a nested path"""
        context = {'apiResponse': {'data': {'customer': {'email': 'a@b.com'}}}}

        assert interpolate('Mail: {{apiResponse.data.customer.email}}', context) == 'Mail: a@b.com'

    def test_unresolved_left_verbatim(self):
        """Test that unknown paths keep their placeholder"""
        assert interpolate('Hello {{missing.path}}!', {}) == 'Hello {{missing.path}}!'

    def test_none_value_left_verbatim(self):
        """Test that a None value keeps its placeholder"""
        assert interpolate('{{email}}', {'email': None}) == '{{email}}'

    def test_non_string_values(self):
        """Test rendering of numbers, booleans and objects"""
        context = {'n': 3, 'flag': True, 'obj': {'a': 1}}

        assert interpolate('{{n}} {{flag}} {{obj}}', context) == '3 true {"a": 1}'

    def test_list_index(self):
        """Test numeric path segments index into lists"""
        context = {'items': [{'name': 'Item 1'}, {'name': 'Item 2'}]}

        assert interpolate('{{items.1.name}}', context) == 'Item 2'

    def test_none_template(self):
        """Test that a missing template renders empty"""
        assert interpolate(None, {'a': 1}) == ''

    def test_no_expression_language(self):
        """Test that only plain paths are substituted"""
        template = '{{ name | upper }}'

        assert interpolate(template, {'name': 'x'}) == template


class TestVariableResolver:
    """Test variable resolution inside node configuration"""

    def test_preserve_type_int(self):
        """Test that a whole-string reference keeps its type"""
        resolver = VariableResolver({'amount': 1000})

        result = resolver.resolve('{{amount}}')
        assert result == 1000
        assert isinstance(result, int)

    def test_string_interpolation(self):
        """Test string interpolation"""
        resolver = VariableResolver({'name': 'John', 'age': 30})

        result = resolver.resolve('Name: {{name}}, Age: {{age}}')
        assert result == 'Name: John, Age: 30'

    def test_nested_dict_resolution(self):
        """Test resolving variables in nested dicts and lists"""
        resolver = VariableResolver({'email': 'test@example.com', 'name': 'Test'})

        result = resolver.resolve({
            'contact': {'email': '{{email}}', 'tags': ['{{name}}', 'static']},
            'count': 2,
        })

        assert result == {
            'contact': {'email': 'test@example.com', 'tags': ['Test', 'static']},
            'count': 2,
        }

    def test_unresolved_whole_reference(self):
        """Test that an unresolved whole-string reference stays a string"""
        resolver = VariableResolver({})

        assert resolver.resolve('{{nope}}') == '{{nope}}'

    def test_lookup_with_and_without_braces(self):
        """Test lookup accepts bare paths and {{paths}}"""
        resolver = VariableResolver({'contact': {'vip': True}})

        assert resolver.lookup('contact.vip') is True
        assert resolver.lookup('{{contact.vip}}') is True
        assert resolver.lookup('contact.age') is None

    def test_unresolved_variables(self):
        """Test listing unresolved variables"""
        resolver = VariableResolver({'name': 'John'})

        unresolved = resolver.unresolved({'a': '{{name}}', 'b': ['{{email}}', '{{x.y}}']})

        assert unresolved == ['email', 'x.y']

    @pytest.mark.parametrize('template', ['plain text', '', '{{}}', '{single}'])
    def test_templates_without_variables(self, template):
        """Test that text without valid references passes through"""
        assert VariableResolver({'single': 'x'}).interpolate(template) == template
