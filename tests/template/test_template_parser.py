"""
Тесты парсера шаблонов.
"""

import pytest

from jetpl.errors import LexError, ParseError
from jetpl.template.nodes import (
    ActionNode, Argument, BinaryNode, BlockNode, BoolNode, CallNode, CommentNode,
    ContextNode, ElseIfBranch, ExtendsNode, FieldNode, GroupNode, IdentifierNode,
    IfNode, ImportNode, IncludeNode, IndexNode, NilNode, NumberNode, PipelineNode,
    RangeNode, StringNode, TextNode, UnaryNode, YieldNode,
)
from jetpl.template.parser import MAX_EXPRESSION_DEPTH, MAX_NESTING, parse


def _expr(source):
    """Выражение единственного действия шаблона."""
    template = parse("expr", "{{ " + source + " }}")
    assert len(template.root) == 1
    node = template.root[0]
    assert isinstance(node, ActionNode)
    return node.pipeline


def num(value):
    return NumberNode(value=value, text=str(value))


class TestTemplateStructure:

    def test_text_only(self):
        template = parse("t", "hello")
        assert template.root == (TextNode("hello"),)
        assert template.name == "t"
        assert template.extends is None
        assert dict(template.blocks) == {}

    def test_comment_node(self):
        template = parse("t", "a{* c *}b")
        assert template.root == (TextNode("a"), CommentNode("{* c *}"), TextNode("b"))

    def test_if_else_if_else(self):
        template = parse("t", "{{if a}}1{{else if b}}2{{else}}3{{end}}")
        assert template.root == (
            IfNode(
                condition=IdentifierNode("a"),
                body=(TextNode("1"),),
                elifs=(ElseIfBranch(IdentifierNode("b"), (TextNode("2"),)),),
                else_body=(TextNode("3"),),
            ),
        )

    def test_range_forms(self):
        plain = parse("t", "{{range users}}x{{end}}").root[0]
        assert plain == RangeNode(IdentifierNode("users"), None, None, (TextNode("x"),))

        single = parse("t", "{{range user := users}}x{{else}}none{{end}}").root[0]
        assert single.key_var is None
        assert single.value_var == "user"
        assert single.else_body == (TextNode("none"),)

        pair = parse("t", "{{range i, u := users}}{{end}}").root[0]
        assert (pair.key_var, pair.value_var) == ("i", "u")

    def test_block_and_yield(self):
        template = parse("t", '{{block hello "Buddy"}}Hi {{.}}{{end}}{{yield hello user.Name}}')
        block = template.root[0]
        assert block == BlockNode(
            name="hello",
            expression=StringNode("Buddy"),
            body=(TextNode("Hi "), ActionNode(ContextNode())),
        )
        assert template.root[1] == YieldNode("hello", FieldNode(IdentifierNode("user"), "Name"))
        assert template.blocks["hello"] is block

    def test_nested_blocks_are_registered(self):
        template = parse("t", "{{block outer}}{{if x}}{{block inner}}i{{end}}{{end}}{{end}}")
        assert sorted(template.blocks) == ["inner", "outer"]

    def test_blocks_mapping_is_read_only(self):
        template = parse("t", "{{block a}}{{end}}")
        with pytest.raises(TypeError):
            template.blocks["b"] = template.blocks["a"]

    def test_extends_and_imports(self):
        template = parse("child", '{{extends "base"}}\n{{import "lib"}}{{block a}}x{{end}}')
        assert template.extends == "base"
        assert template.imports == ("lib",)
        assert template.root[0] == ExtendsNode("base")
        assert ImportNode("lib") in template.root

    def test_include_with_and_without_expression(self):
        template = parse("t", '{{include "a"}}{{include "b" user}}')
        assert template.root == (
            IncludeNode("a", None),
            IncludeNode("b", IdentifierNode("user")),
        )

    def test_same_tree_ignores_name(self):
        assert parse("a", "{{ x }}").same_tree(parse("b", "{{x}}"))
        assert not parse("a", "{{ x }}").same_tree(parse("a", "{{ y }}"))


class TestExpressions:

    def test_literals(self):
        assert _expr('"s"') == StringNode("s")
        assert _expr("12") == NumberNode(12, "12")
        assert _expr("1.25") == NumberNode(1.25, "1.25")
        assert _expr("true") == BoolNode(True)
        assert _expr("false") == BoolNode(False)
        assert _expr("nil") == NilNode()
        assert _expr(".") == ContextNode()

    def test_multiplication_binds_tighter_than_addition(self):
        assert _expr("2+4*2") == BinaryNode("+", num(2), BinaryNode("*", num(4), num(2)))

    def test_left_associativity(self):
        assert _expr("1-2-3") == BinaryNode("-", BinaryNode("-", num(1), num(2)), num(3))

    def test_equality_is_below_relational(self):
        node = _expr("a > b == c > d")
        assert node.operator == "=="
        assert node.left == BinaryNode(">", IdentifierNode("a"), IdentifierNode("b"))
        assert node.right == BinaryNode(">", IdentifierNode("c"), IdentifierNode("d"))

    def test_logical_precedence(self):
        node = _expr("a || b && c")
        assert node == BinaryNode(
            "||",
            IdentifierNode("a"),
            BinaryNode("&&", IdentifierNode("b"), IdentifierNode("c")),
        )

    def test_unary(self):
        assert _expr("!a") == UnaryNode("!", IdentifierNode("a"))
        assert _expr("-x * 2") == BinaryNode("*", UnaryNode("-", IdentifierNode("x")), num(2))

    def test_grouping_is_kept(self):
        assert _expr("(2*5)%1") == BinaryNode(
            "%", GroupNode(BinaryNode("*", num(2), num(5))), num(1)
        )

    def test_field_chain(self):
        assert _expr("a.b.c") == FieldNode(FieldNode(IdentifierNode("a"), "b"), "c")
        assert _expr(".Name") == FieldNode(None, "Name")

    def test_index(self):
        assert _expr("items[0].Name") == FieldNode(IndexNode(IdentifierNode("items"), num(0)), "Name")

    def test_paren_call(self):
        assert _expr('f(1, "x")') == CallNode(
            IdentifierNode("f"), (Argument(None, num(1)), Argument(None, StringNode("x")))
        )

    def test_colon_call_equals_paren_call(self):
        colon = _expr('user.Format: "%s", 2')
        paren = _expr('user.Format("%s", 2)')
        assert colon == paren
        assert colon.colon_form is True
        assert paren.colon_form is False

    def test_colon_arguments_extend_over_operators(self):
        node = _expr("f: 1 + 2")
        assert node == CallNode(IdentifierNode("f"), (Argument(None, BinaryNode("+", num(1), num(2))),))

    def test_named_arguments_keep_order(self):
        node = _expr('map(@name, "x", @email "y", 3)')
        assert node.args == (
            Argument("name", StringNode("x")),
            Argument("email", StringNode("y")),
            Argument(None, num(3)),
        )

    def test_pipeline(self):
        node = _expr('lower: "WORLD" | upper | repeat: 2')
        assert node == PipelineNode(
            head=CallNode(IdentifierNode("lower"), (Argument(None, StringNode("WORLD")),)),
            filters=(
                CallNode(IdentifierNode("upper")),
                CallNode(IdentifierNode("repeat"), (Argument(None, num(2)),)),
            ),
        )

    def test_call_result_field(self):
        node = _expr('map("name", 1).name')
        assert isinstance(node, FieldNode)
        assert isinstance(node.target, CallNode)


class TestParseErrors:

    @pytest.mark.parametrize("source, construct", [
        ("{{if x}}a", "if"),
        ("{{range xs}}a", "range"),
        ("{{block b}}a", "block"),
        ("{{if x}}a{{else}}b", "if"),
    ])
    def test_missing_end_names_construct(self, source, construct):
        with pytest.raises(ParseError, match=f"Expected {{{{end}}}} to close '{construct}'"):
            parse("t", source)

    def test_stray_end(self):
        with pytest.raises(ParseError, match="Unexpected"):
            parse("t", "a{{end}}")

    def test_stray_else(self):
        with pytest.raises(ParseError, match="Unexpected"):
            parse("t", "{{else}}")

    def test_else_in_block(self):
        with pytest.raises(ParseError, match="Unexpected"):
            parse("t", "{{block a}}x{{else}}y{{end}}")

    def test_extends_must_be_first(self):
        with pytest.raises(ParseError, match="extends must be the first action"):
            parse("t", '{{ x }}{{extends "base"}}')

    def test_extends_only_once(self):
        with pytest.raises(ParseError, match="Duplicate extends"):
            parse("t", '{{extends "a"}}{{extends "b"}}')

    def test_extending_template_only_contains_blocks(self):
        with pytest.raises(ParseError, match="may only contain block definitions"):
            parse("t", '{{extends "base"}}{{ name }}')

    def test_extending_template_allows_text_and_comments(self):
        template = parse("t", '{{extends "base"}}\n{* note *}\n{{block a}}{{ x }}{{end}}')
        assert template.extends == "base"

    def test_duplicate_block(self):
        with pytest.raises(ParseError, match="Duplicate block 'a'"):
            parse("t", "{{block a}}{{end}}{{block a}}{{end}}")

    def test_nested_import_rejected(self):
        with pytest.raises(ParseError, match="import is only allowed at the top level"):
            parse("t", '{{if x}}{{import "a"}}{{end}}')

    def test_empty_action(self):
        with pytest.raises(ParseError, match="Empty action"):
            parse("t", "{{ }}")

    def test_unclosed_paren(self):
        with pytest.raises(ParseError, match="Expected '\\)'"):
            parse("t", "{{ (1 + 2 }}")

    def test_keyword_as_value(self):
        with pytest.raises(ParseError, match="Unexpected keyword 'range'"):
            parse("t", "{{ 1 + range }}")

    def test_colon_on_literal(self):
        with pytest.raises(ParseError, match="Unexpected ':'"):
            parse("t", '{{ "x": 1 }}')

    def test_error_carries_position_and_template(self):
        with pytest.raises(ParseError) as exc_info:
            parse("page", "line\n{{ if }}")
        error = exc_info.value
        assert error.template == "page"
        assert error.line == 2

    def test_lex_errors_propagate(self):
        with pytest.raises(LexError):
            parse("t", '{{ "open }}')


class TestNestingLimits:

    def test_construct_nesting_at_limit(self):
        source = "{{if true}}" * MAX_NESTING + "x" + "{{end}}" * MAX_NESTING
        assert len(parse("t", source).root) == 1

    @pytest.mark.parametrize("opening, closing", [
        ("{{if true}}", "{{end}}"),
        ("{{range xs}}", "{{end}}"),
        ("{{block b}}", "{{end}}"),
    ])
    def test_construct_nesting_too_deep(self, opening, closing):
        source = opening * 400 + "x" + closing * 400
        with pytest.raises(ParseError, match="nesting too deep"):
            parse("deep", source)

    def test_grouping_at_limit(self):
        depth = MAX_EXPRESSION_DEPTH - 1
        template = parse("t", "{{ " + "(" * depth + "1" + ")" * depth + " }}")
        assert len(template.root) == 1

    @pytest.mark.parametrize("expression", [
        "(" * 1000 + "1" + ")" * 1000,
        "!" * 1000 + "true",
        "-" * 1000 + "1",
        "a" + "[0]" * 1000,
        "f(" * 1000 + ")" * 1000,
        " + ".join(["1"] * 500),
    ])
    def test_expression_nesting_too_deep(self, expression):
        with pytest.raises(ParseError, match="expression nesting too deep"):
            parse("p", "{{ " + expression + " }}")
