"""JSON projection: jsonGet / jsonObject / jsonGroupArray / jsonArray and member resolution."""

from __future__ import annotations

import pytest

from pgdialect.errors import CompilationError
from pgdialect.query.member import MemberPath, MemberResolvingEvent
from pgdialect.query.operands import QueryOperand, ValuesOperand, call, field_ref
from pgdialect.query.query_expression import QueryExpression, SelectItem
from tests.fixtures import load_simple_order_schema

SCHEMA = load_simple_order_schema()
JSON_FIELDS = {f["name"] for f in SCHEMA["fields"] if f["type"] == "Json"}


def on_resolving_json_member(event: MemberResolvingEvent) -> None:
    """Redirect ``customer.description`` style paths of JSON columns to ``jsonGet``."""
    root = event.fully_qualified_member.split(".")[0]
    if root not in JSON_FIELDS:
        return
    event.object = event.target.collection
    event.member = call("jsonGet", field_ref(f"{event.target.collection}.{event.fully_qualified_member}"))


def _orders() -> QueryExpression:
    query = QueryExpression.from_table(SCHEMA["source"])
    query.resolving_join_member.subscribe(on_resolving_json_member)
    return query


# ---------------------------------------------------------------------------
# Member resolution
# ---------------------------------------------------------------------------


def test_select_json_field(formatter):
    query = _orders().with_select(
        "id", SelectItem(expr=field_ref("SimpleOrders.customer.description"), alias="customer")
    )
    assert formatter.format(query) == (
        'SELECT "SimpleOrders"."id", '
        "json_extract_path_text(\"SimpleOrders\".\"customer\"::json, 'description') AS \"customer\" "
        'FROM "SimpleOrders"'
    )


def test_select_nested_json_field(formatter):
    query = _orders().with_select(
        SelectItem(expr=field_ref("SimpleOrders.customer.address.streetAddress"), alias="address")
    )
    assert formatter.format(query) == (
        "SELECT json_extract_path_text(\"SimpleOrders\".\"customer\"::json, 'address', 'streetAddress') "
        'AS "address" FROM "SimpleOrders"'
    )


def test_select_nested_json_field_with_method(formatter):
    query = _orders().with_select(
        SelectItem(expr=call("year", field_ref("SimpleOrders.orderedItem.releaseDate")), alias="releaseYear")
    )
    assert formatter.format(query) == (
        "SELECT DATE_PART('year', json_extract_path_text(\"SimpleOrders\".\"orderedItem\"::json, "
        "'releaseDate')::timestamp) AS \"releaseYear\" FROM \"SimpleOrders\""
    )


def test_json_field_in_where(formatter):
    query = _orders().with_where(
        {"$eq": [{"field": "SimpleOrders.orderStatus.alternateName"}, "delivered"]}
    )
    assert formatter.format(query) == (
        'SELECT * FROM "SimpleOrders" WHERE '
        "json_extract_path_text(\"SimpleOrders\".\"orderStatus\"::json, 'alternateName') = 'delivered'"
    )


def test_event_carries_collection_and_target(formatter):
    seen: list[MemberResolvingEvent] = []
    query = _orders()
    query.resolving_join_member.subscribe(seen.append)
    query = query.with_select(SelectItem(expr=field_ref("SimpleOrders.customer.email")))
    formatter.format(query)
    assert len(seen) == 1
    assert seen[0].fully_qualified_member == "customer.email"
    assert seen[0].object == "SimpleOrders"
    assert seen[0].target is query


def test_plain_members_do_not_fire_event(formatter):
    seen: list[MemberResolvingEvent] = []
    query = _orders()
    query.resolving_join_member.subscribe(seen.append)
    formatter.format(query.with_select("id", "orderNumber"))
    assert seen == []


def test_joined_collection_is_not_a_member_path(formatter):
    seen: list[MemberResolvingEvent] = []
    query = _orders().with_join(
        "Customers", on={"$eq": [{"field": "SimpleOrders.buyer"}, {"field": "Customers.id"}]}
    )
    query.resolving_join_member.subscribe(seen.append)
    formatter.format(query.with_select("Customers.name"))
    assert seen == []


def test_unresolved_member_keeps_plain_rendering(formatter):
    query = QueryExpression.from_table("SimpleOrders").with_select(
        SelectItem(expr=field_ref("SimpleOrders.customer.description"))
    )
    assert formatter.format(query) == 'SELECT "SimpleOrders"."customer"."description" FROM "SimpleOrders"'


def test_unsubscribe(formatter):
    query = _orders()
    query.resolving_join_member.unsubscribe(on_resolving_json_member)
    assert len(query.resolving_join_member) == 0


def test_member_path_parse():
    path = MemberPath.parse("Orders.customer.name", {"Orders"})
    assert path.collection == "Orders"
    assert path.member == "customer.name"
    assert path.nested
    assert not MemberPath.parse("Orders.id", {"Orders"}).nested
    assert MemberPath.parse("customer.name", {"Orders"}).collection is None
    assert str(MemberPath.parse("a.b")) == "a.b"


# ---------------------------------------------------------------------------
# JSON functions
# ---------------------------------------------------------------------------


def test_json_get_outside_query_uses_first_two_segments(formatter):
    sql = formatter.escape(call("jsonGet", field_ref("Orders.customer.address.city")))
    assert sql == "json_extract_path_text(\"Orders\".\"customer\"::json, 'address', 'city')"


def test_json_get_requires_nested_path(formatter):
    with pytest.raises(CompilationError):
        formatter.escape(call("jsonGet", field_ref("Orders.customer")))


def test_json_object_keys(formatter):
    sql = formatter.escape(
        call(
            "jsonObject",
            field_ref("T.id"),
            field_ref("T.name", alias="title"),
            call("jsonGet", field_ref("T.customer.email")),
            call("year", field_ref("T.orderDate")),
        )
    )
    assert sql == (
        "json_build_object('id', \"T\".\"id\", 'title', \"T\".\"name\", "
        "'email', json_extract_path_text(\"T\".\"customer\"::json, 'email'), "
        "'year', DATE_PART('year', \"T\".\"orderDate\"::timestamp))"
    )


def test_json_object_from_mapping(formatter):
    sql = formatter.escape(call("jsonObject", {"total": field_ref("T.total")}))
    assert sql == "json_build_object('total', \"T\".\"total\")"


def test_json_object_rejects_unnamed_literal(formatter):
    with pytest.raises(CompilationError):
        formatter.escape(call("jsonObject", 5))


def test_json_group_array(formatter):
    sql = formatter.escape(call("jsonGroupArray", call("jsonObject", field_ref("T.id"))))
    assert sql == "json_agg(json_build_object('id', \"T\".\"id\"))"


def test_json_group_array_requires_json_object(formatter):
    with pytest.raises(CompilationError):
        formatter.escape(call("jsonGroupArray", field_ref("T.id")))


def test_json_array_of_field(formatter):
    assert formatter.escape(call("jsonArray", field_ref("T.tags"))) == '"T"."tags"'


def test_json_array_of_values(formatter):
    assert formatter.escape(call("jsonArray", ValuesOperand(values=[1, "a"]))) == "json_build_array(1, 'a')"


def test_json_array_of_subquery(formatter):
    items = (
        QueryExpression.from_table("OrderItems")
        .with_select("id", SelectItem(expr=field_ref("OrderItems.product"), alias="item"))
        .with_where({"$eq": [{"field": "OrderItems.order"}, {"field": "Orders.id"}]})
    )
    query = QueryExpression.from_table("Orders").with_select(
        "id", SelectItem(expr=call("jsonArray", QueryOperand(query=items)), alias="items")
    )
    assert formatter.format(query) == (
        'SELECT "Orders"."id", (SELECT json_agg(json_build_object('
        "'id', \"OrderItems\".\"id\", 'item', \"OrderItems\".\"product\")) "
        'FROM "OrderItems" WHERE "OrderItems"."order" = "Orders"."id") AS "items" FROM "Orders"'
    )
    # the nested expression is left untouched
    assert items.select[0].expr.field == "OrderItems.id"
    assert len(items.select) == 2


def test_json_array_rejects_literal(formatter):
    with pytest.raises(CompilationError):
        formatter.escape(call("jsonArray", 5))
