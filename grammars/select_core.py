"""
Core SELECT Grammar
Queries over the universe's tables and views, with inline views, EXISTS
sub-queries and aliases kept consistent through the scope catalog.
"""

from pyorion.dsl.core import GrammarDefinition

g = GrammarDefinition("select_core", "SELECT statements with scoped table and column references")

g.nonterminals(
    "sql_statement", "query", "query_block",
    "select_list", "select_item", "col_alias", "nextval_call", "sequence_ref",
    "from_list", "from_item", "table_ref", "schema_ref", "table_tail",
    "view_ref", "mview_ref", "alias_def", "subquery", "end_of_subquery",
    "where_opt", "condition", "predicate", "cmp_op",
    "column_ref", "literal", "integer_lit", "string_lit",
    "order_opt", "order_list", "limit_opt",
)
g.keywords("select", "distinct", "from", "where", "and", "or", "not",
           "as", "order", "by", "limit", "exists", "is", "null")
g.terminal("nextval")
g.terminals(",", "(", ")", ".", "=", "<>", "<", ">", "<=", ">=")

# Each statement is a query block with its own scope segment.
g.rule("N", "sql_statement", "query", gen="subquery", rep="subquery")
g.rule("N", "query", "query_block")
g.rule("O", "query", "set_operation")
g.stub("set_operation")

g.rules([
    ("query_block", "SELECT select_list FROM from_list where_opt order_opt limit_opt", "N",
     None, "sources_first"),
    ("query_block", "SELECT DISTINCT select_list FROM from_list where_opt", "L",
     None, "sources_first"),

    ("select_list", "select_item", "N"),
    ("select_list", "select_list , select_item", "M", None, "comma_list"),
    ("select_item", "column_ref", "N", None, "output_column"),
    ("select_item", "column_ref AS col_alias", "M"),
    ("select_item", "nextval_call", "O"),
    ("col_alias", (), "N", None, "column_alias"),
    ("nextval_call", "nextval ( sequence_ref )", "N", None, "tight"),
    ("sequence_ref", (), "N", "register_sequence", "sequence_literal"),

    ("from_list", "from_item", "N"),
    ("from_list", "from_list , from_item", "L", None, "comma_list"),
    ("from_item", "table_ref", "N"),
    ("from_item", "table_ref alias_def", "N"),
    ("from_item", "view_ref alias_def", "O"),
    ("from_item", "mview_ref alias_def", "O"),
    ("from_item", "subquery alias_def", "L"),

    # Tables are registered while the tree is built so that column
    # references rendered later can resolve against them.
    ("table_ref", (), "N", "register_table", "payload_name"),
    ("table_ref", "schema_ref . table_tail", "L", None, "tight_binary"),
    ("schema_ref", (), "N", "register_schema", "payload_schema"),
    ("table_tail", (), "N", "register_table", "payload_name"),
    ("view_ref", (), "N", "register_view", "payload_name"),
    ("mview_ref", (), "N", "register_mview", "payload_name"),
    ("alias_def", (), "N", "define_alias", "payload_text"),

    ("subquery", "( query_block end_of_subquery )", "N", "subquery", "subquery"),
    ("end_of_subquery", (), "N", "end_of_subquery", "end_of_subquery"),

    ("where_opt", (), "N"),
    ("where_opt", "WHERE condition", "M"),
    ("condition", "predicate", "N"),
    ("condition", "condition AND predicate", "L"),
    ("condition", "condition OR predicate", "O"),
    ("condition", "NOT predicate", "O"),
    ("predicate", "column_ref cmp_op literal", "N"),
    ("predicate", "column_ref cmp_op column_ref", "L"),
    ("predicate", "column_ref IS NULL", "L"),
    ("predicate", "EXISTS subquery", "O"),
    ("predicate", "( condition )", "O", None, "tight_paren"),

    ("cmp_op", "=", "N"),
    ("cmp_op", "<>", "L"),
    ("cmp_op", "<", "N"),
    ("cmp_op", ">", "N"),
    ("cmp_op", "<=", "L"),
    ("cmp_op", ">=", "L"),

    ("column_ref", (), "N", None, "column_ref"),
    ("literal", "integer_lit", "N"),
    ("literal", "string_lit", "L"),
    ("integer_lit", (), "N", "integer", "payload_text"),
    ("string_lit", (), "N", "string", "payload_text"),

    ("order_opt", (), "N"),
    ("order_opt", "ORDER BY order_list", "L"),
    ("order_list", "column_ref", "N"),
    ("order_list", "order_list , column_ref", "L", None, "comma_list"),
    ("limit_opt", (), "N"),
    ("limit_opt", "LIMIT integer_lit", "L"),
])

g.start("sql_statement")
