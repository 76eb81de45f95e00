"""Naming helpers used to derive table, foreign key and pivot names."""

import re

_PLURAL_ES = re.compile(r"(s|x|z|ch|sh)$")
_SINGULAR_ES = re.compile(r"(xes|ses|zes|ches|shes)$")


def snake_case(value):
    snake = re.sub(r"(?<!^)[A-Z]", r"_\g<0>", value).lower()
    return snake.replace(" ", "_")


def guess_table_name(class_name):
    """``UserProfile`` -> ``user_profiles``; names already ending in ``s`` are kept."""
    snake = snake_case(class_name)
    if not snake.endswith("s"):
        snake += "s"
    return snake


def singular_table_name(table):
    if table.endswith("ies"):
        return table[:-3] + "y"
    if _SINGULAR_ES.search(table):
        return table[:-2]
    if table.endswith("s"):
        return table[:-1]
    return table


def pluralize_table_name(table):
    if table.endswith("y"):
        return table[:-1] + "ies"
    if _PLURAL_ES.search(table):
        return table + "es"
    return table + "s"


def pivot_table_name(first_table, second_table):
    """``users`` + ``roles`` -> ``role_users``: sorted singulars, second one pluralized."""
    segments = sorted([singular_table_name(first_table), singular_table_name(second_table)])
    segments[1] = pluralize_table_name(segments[1])
    return "_".join(segments)
