import pytest

from fluentorm.builder import QueryBuilder, raw
from fluentorm.clauses import Clause
from fluentorm.compiler import QueryCompiler
from fluentorm.exceptions import QueryValidationError


def users():
    return QueryBuilder.table("users")


def test_basic_select_with_where_order_and_limit():
    query = (
        users()
        .where("active", 1)
        .where("age", ">", 18)
        .order_by("created_at", "desc")
        .limit(5)
    )

    assert query.to_sql() == (
        "SELECT * FROM `users` WHERE `active` = ? AND `age` > ? "
        "ORDER BY `created_at` DESC LIMIT 5"
    )
    assert query.get_bindings() == [1, 18]


def test_nested_group_strips_its_own_leading_boolean():
    query = users().where("status", "active").where(
        lambda q: q.where("role", "admin").or_where("role", "editor")
    )

    assert query.to_sql() == (
        "SELECT * FROM `users` WHERE `status` = ? AND (`role` = ? OR `role` = ?)"
    )
    assert query.get_bindings() == ["active", "admin", "editor"]


def test_empty_nested_group_is_omitted():
    query = users().where("a", 1).or_where(lambda q: None)
    assert query.to_sql() == "SELECT * FROM `users` WHERE `a` = ?"


def test_first_clause_never_emits_connector():
    query = users().or_where("a", 1).or_where("b", 2)
    assert query.to_sql() == "SELECT * FROM `users` WHERE `a` = ? OR `b` = ?"


def test_where_accepts_mapping_of_equalities():
    query = users().where({"name": "ada", "age": 36})
    assert query.to_sql() == "SELECT * FROM `users` WHERE `name` = ? AND `age` = ?"
    assert query.get_bindings() == ["ada", 36]


def test_where_with_none_becomes_null_check():
    query = users().where("deleted_at", None).where("banned_at", "!=", None)
    assert query.to_sql() == (
        "SELECT * FROM `users` WHERE `deleted_at` IS NULL AND `banned_at` IS NOT NULL"
    )
    assert query.get_bindings() == []


def test_operator_is_upper_cased():
    query = users().where("name", "like", "a%")
    assert query.to_sql() == "SELECT * FROM `users` WHERE `name` LIKE ?"


def test_empty_in_is_always_false_and_empty_not_in_is_dropped():
    assert users().where_in("id", []).to_sql() == "SELECT * FROM `users` WHERE 1 = 0"
    assert users().where_not_in("id", []).to_sql() == "SELECT * FROM `users`"

    query = users().where("a", 1).or_where_in("id", [])
    assert query.to_sql() == "SELECT * FROM `users` WHERE `a` = ? OR 1 = 0"
    assert query.get_bindings() == [1]


def test_in_and_not_in():
    query = users().where_in("id", [1, 2, 3]).or_where_not_in("role", ["x"])
    assert query.to_sql() == (
        "SELECT * FROM `users` WHERE `id` IN (?, ?, ?) OR `role` NOT IN (?)"
    )
    assert query.get_bindings() == [1, 2, 3, "x"]


def test_in_set_expands_one_test_per_value():
    query = users().where_in_set("tags", ["a", "b"])
    assert query.to_sql() == (
        "SELECT * FROM `users` WHERE "
        "(FIND_IN_SET(?, `tags`) > 0 OR FIND_IN_SET(?, `tags`) > 0)"
    )
    assert query.get_bindings() == ["a", "b"]

    query = users().where_not_in_set("tags", ["a", "b"])
    assert query.to_sql() == (
        "SELECT * FROM `users` WHERE "
        "(FIND_IN_SET(?, `tags`) = 0 AND FIND_IN_SET(?, `tags`) = 0)"
    )

    assert users().where_in_set("tags", []).to_sql() == "SELECT * FROM `users` WHERE 1 = 0"
    assert users().where_not_in_set("tags", []).to_sql() == "SELECT * FROM `users`"


def test_between_requires_two_values():
    query = users().where_between("age", [18, 30]).or_where_not_between("score", (1, 2))
    assert query.to_sql() == (
        "SELECT * FROM `users` WHERE `age` BETWEEN ? AND ? OR `score` NOT BETWEEN ? AND ?"
    )
    assert query.get_bindings() == [18, 30, 1, 2]

    with pytest.raises(QueryValidationError):
        users().where_between("age", [18])


def test_exists_merges_subquery_bindings_in_place():
    orders = (
        QueryBuilder.table("orders")
        .where_raw("orders.user_id = users.id")
        .where("total", ">", 100)
    )
    query = users().where("active", 1).where_exists(orders).where("age", ">", 20)

    assert query.to_sql() == (
        "SELECT * FROM `users` WHERE `active` = ? AND EXISTS "
        "(SELECT * FROM `orders` WHERE orders.user_id = users.id AND `total` > ?) "
        "AND `age` > ?"
    )
    assert query.get_bindings() == [1, 100, 20]


def test_exists_snapshots_the_subquery():
    orders = QueryBuilder.table("orders").where("total", ">", 100)
    query = users().where_not_exists(orders)
    orders.where("status", "paid")

    assert query.to_sql() == (
        "SELECT * FROM `users` WHERE NOT EXISTS (SELECT * FROM `orders` WHERE `total` > ?)"
    )
    assert query.get_bindings() == [100]


def test_select_aliases_and_table_alias():
    query = QueryBuilder.table("users as u").select("u.name as customer_name", "COUNT(*) as total")
    assert query.to_sql() == (
        "SELECT `u`.`name` AS `customer_name`, COUNT(*) AS `total` FROM `users` AS `u`"
    )

    assert QueryBuilder.table("users u").to_sql() == "SELECT * FROM `users` AS `u`"
    assert QueryBuilder.table("users", "u").to_sql() == "SELECT * FROM `users` AS `u`"


def test_add_select_appends():
    query = users().select("id").add_select(["name", "email"])
    assert query.to_sql() == "SELECT `id`, `name`, `email` FROM `users`"


def test_joins():
    query = (
        QueryBuilder.table("users as u")
        .select("u.id", "o.total")
        .join("orders as o", "o.user_id", "=", "u.id")
        .left_join("profiles", "profiles.user_id", "=", "u.id")
    )
    assert query.to_sql() == (
        "SELECT `u`.`id`, `o`.`total` FROM `users` AS `u` "
        "INNER JOIN `orders` AS `o` ON `o`.`user_id` = `u`.`id` "
        "LEFT JOIN `profiles` ON `profiles`.`user_id` = `u`.`id`"
    )


def test_join_without_second_column_raises():
    with pytest.raises(QueryValidationError):
        users().join("orders", "orders.user_id", "=")


def test_group_having_and_raw_order():
    query = (
        QueryBuilder.table("orders")
        .select("user_id")
        .select_raw("SUM(total) AS total_amount")
        .group_by("user_id")
        .having("total_amount", ">", 500)
        .order_by(raw("total_amount"), "DESC")
    )
    assert query.to_sql() == (
        "SELECT `user_id`, SUM(total) AS total_amount FROM `orders` "
        "GROUP BY `user_id` HAVING `total_amount` > ? ORDER BY total_amount DESC"
    )
    assert query.get_bindings() == [500]


def test_nested_having():
    query = QueryBuilder.table("orders").group_by("user_id").having(
        lambda q: q.having("a", ">", 1).or_having("b", 2)
    )
    assert query.to_sql() == (
        "SELECT * FROM `orders` GROUP BY `user_id` HAVING (`a` > ? OR `b` = ?)"
    )


def test_having_without_value_raises():
    with pytest.raises(QueryValidationError):
        QueryBuilder.table("orders").having("total", ">", None)


def test_bindings_follow_placeholder_order_not_call_order():
    """Methods are called out of SQL order; bindings still line up."""
    query = (
        QueryBuilder.table("t")
        .order_by_raw("FIELD(id, ?, ?)", [3, 4])
        .having_raw("COUNT(*) > ?", [2])
        .where("a", 1)
        .select_raw("IF(x > ?, 1, 0) AS flag", [5])
    )
    assert query.to_sql() == (
        "SELECT IF(x > ?, 1, 0) AS flag FROM `t` WHERE `a` = ? "
        "HAVING COUNT(*) > ? ORDER BY FIELD(id, ?, ?)"
    )
    assert query.get_bindings() == [5, 1, 2, 3, 4]


def test_order_direction_is_validated():
    with pytest.raises(QueryValidationError):
        users().order_by("name", "sideways")


def test_limit_offset_clamping_and_for_page():
    assert users().limit(-5).to_sql() == "SELECT * FROM `users` LIMIT 0"
    assert users().limit(5).limit(None).to_sql() == "SELECT * FROM `users`"
    assert users().for_page(3, 10).to_sql() == "SELECT * FROM `users` LIMIT 10 OFFSET 20"
    assert users().for_page(0, 10).to_sql() == "SELECT * FROM `users` LIMIT 10 OFFSET 0"


def test_whitespace_is_collapsed():
    query = users().where_raw("a   =\n  1")
    assert query.to_sql() == "SELECT * FROM `users` WHERE a = 1"


def test_when_applies_callback_or_default():
    query = users().when("ada", lambda q, name: q.where("name", name))
    assert query.get_bindings() == ["ada"]

    query = users().when(None, lambda q, v: q.where("x", 1), lambda q, v: q.where("y", 2))
    assert query.to_sql() == "SELECT * FROM `users` WHERE `y` = ?"


def test_clone_is_independent():
    base = users().where(lambda q: q.where("a", 1))
    copy = base.clone()
    copy.wheres[0].clauses.append(copy.wheres[0].clauses[0].clone())
    copy.where("b", 2)

    assert base.to_sql() == "SELECT * FROM `users` WHERE (`a` = ?)"
    assert copy.to_sql() == "SELECT * FROM `users` WHERE (`a` = ? AND `a` = ?) AND `b` = ?"


def test_identifier_quoting():
    compiler = QueryCompiler()
    assert compiler.wrap("users.name") == "`users`.`name`"
    assert compiler.wrap("users.*") == "`users`.*"
    assert compiler.wrap("*") == "*"
    assert compiler.wrap_value("we`ird") == "`we``ird`"
    assert compiler.wrap_value("`already`") == "`already`"
    # anything with a space or parenthesis passes through as raw SQL
    assert compiler.wrap("LOWER(name)") == "LOWER(name)"
    assert compiler.is_expression("first name")


def test_update_and_delete_compilation():
    compiler = QueryCompiler()
    query = users().where("id", 5)

    assert compiler.compile_update(query, {"name": "x", "age": 3}) == (
        "UPDATE `users` SET `name` = ?, `age` = ? WHERE `id` = ?",
        ["x", 3, 5],
    )
    assert compiler.compile_delete(query) == ("DELETE FROM `users` WHERE `id` = ?", [5])


def test_insert_compilation_for_many_rows():
    compiler = QueryCompiler()
    sql, bindings = compiler.compile_insert("users", [{"a": 1, "b": 2}, {"a": 3, "b": 4}])
    assert sql == "INSERT INTO `users` (`a`, `b`) VALUES (?, ?), (?, ?)"
    assert bindings == [1, 2, 3, 4]


def test_unsupported_clause_type_raises():
    class Custom(Clause):
        def clone(self):
            return Custom(self.boolean)

    query = users()
    query.wheres.append(Custom())
    with pytest.raises(QueryValidationError):
        query.to_sql()


def test_missing_table_raises():
    with pytest.raises(QueryValidationError):
        QueryBuilder().to_sql()


def test_operators_are_normalized_and_checked():
    query = (
        users()
        .where("name", "not  like", "a%")
        .join("orders", "orders.user_id", "<>", "users.id")
    )
    assert query.to_sql() == (
        "SELECT * FROM `users` INNER JOIN `orders` ON `orders`.`user_id` <> `users`.`id` "
        "WHERE `name` NOT LIKE ?"
    )

    with pytest.raises(QueryValidationError):
        users().where("id", "= 1 OR 1 =", 1)
    with pytest.raises(QueryValidationError):
        users().having("total", "; DROP TABLE users; --", 1)
    with pytest.raises(QueryValidationError):
        users().join("orders", "orders.user_id", "= users.id OR", "users.id")
