"""Static policy check for model-generated SQL.

This is a textual filter layered in front of the read-only execution channel,
which remains the enforcement boundary: a statement that slips past these
checks still cannot write.
"""

from __future__ import annotations

import logging
import re
from typing import Iterator

import sqlglot
from sqlglot import exp
from sqlglot.errors import SqlglotError

from seolens.core.config import get_settings
from seolens.core.errors import SqlValidationError
from seolens.domain.models import Base
from seolens.domain.query import GuardDecision


logger = logging.getLogger(__name__)


DENYLIST = ("INSERT", "UPDATE", "DELETE", "DROP", "TRUNCATE", "ALTER", "CREATE", "GRANT", "REVOKE")
_DENYLIST_PATTERN = re.compile(r"\b(" + "|".join(DENYLIST) + r")\b", re.IGNORECASE)
_LEADING_WORD = re.compile(r"^([A-Za-z_]+)")
TENANT_COLUMN = "user_id"
TENANT_TABLES = frozenset(table.name for table in Base.metadata.sorted_tables if TENANT_COLUMN in table.c)

SELECT_ONLY_REASON = "Only SELECT statements are allowed"
SINGLE_STATEMENT_REASON = "Only a single statement is allowed"
UNPARSABLE_REASON = "Query could not be validated"
TENANT_SCOPE_REASON = "Query must be scoped to your account"
TABLE_NOT_ALLOWED_REASON = "Query reads a table outside your account data"


def _conjuncts(node: exp.Expression) -> Iterator[exp.Expression]:
    if isinstance(node, exp.Paren):
        yield from _conjuncts(node.this)
    elif isinstance(node, exp.And):
        yield from _conjuncts(node.this)
        yield from _conjuncts(node.expression)
    else:
        yield node


def _tenant_qualifier(node: exp.Expression, tenant_id: str) -> str | None:
    """Table qualifier of a ``user_id = '<tenant>'`` term, ``""`` when unqualified."""
    if not isinstance(node, exp.EQ):
        return None
    sides = (node.this, node.expression)
    has_literal = any(
        isinstance(side, exp.Literal) and side.is_string and side.this == tenant_id for side in sides
    )
    if not has_literal:
        return None
    for side in sides:
        if isinstance(side, exp.Column) and side.name.lower() == TENANT_COLUMN:
            return side.table.lower()
    return None


def _direct_tables(select: exp.Select, cte_names: set[str]) -> list[exp.Table]:
    # FROM and JOIN sources of this SELECT; a comma join parses as a JOIN too.
    return [
        table
        for table in select.find_all(exp.Table)
        if table.find_ancestor(exp.Select) is select and table.name.lower() not in cte_names
    ]


def _scoped_references(select: exp.Select, tenant_id: str) -> set[str]:
    where = select.args.get("where")
    if where is None:
        return set()
    # Only top-level AND terms count; an OR branch could widen the scope.
    qualifiers = (_tenant_qualifier(term, tenant_id) for term in _conjuncts(where.this))
    return {qualifier for qualifier in qualifiers if qualifier is not None}


def _unscoped_table(select: exp.Select, cte_names: set[str], tenant_id: str) -> exp.Table | None:
    tables = _direct_tables(select, cte_names)
    if not tables:
        return None
    scoped = _scoped_references(select, tenant_id)
    for table in tables:
        if table.alias_or_name.lower() in scoped:
            continue
        if len(tables) == 1 and "" in scoped:
            continue
        return table
    return None


class SqlGuard:
    def __init__(self, *, require_tenant_predicate: bool | None = None) -> None:
        if require_tenant_predicate is None:
            require_tenant_predicate = get_settings().sql_guard_require_tenant_predicate
        self._require_tenant_predicate = require_tenant_predicate

    def validate(self, sql: str, tenant_id: str) -> GuardDecision:
        normalized = sql.strip().upper()
        if not normalized.startswith("SELECT"):
            leading = _LEADING_WORD.match(normalized)
            if leading and leading.group(1) in DENYLIST:
                return GuardDecision(ok=False, reason=f"{leading.group(1)} statements are not allowed")
            return GuardDecision(ok=False, reason=SELECT_ONLY_REASON)

        denied = _DENYLIST_PATTERN.search(sql)
        if denied:
            return GuardDecision(ok=False, reason=f"{denied.group(1).upper()} statements are not allowed")

        if self._require_tenant_predicate:
            reason = self._check_tenant_scope(sql, tenant_id)
            if reason is not None:
                return GuardDecision(ok=False, reason=reason)
        return GuardDecision(ok=True)

    def raise_for(self, sql: str, tenant_id: str) -> None:
        decision = self.validate(sql, tenant_id)
        if not decision.ok:
            raise SqlValidationError(decision.reason or SELECT_ONLY_REASON)

    @staticmethod
    def _check_tenant_scope(sql: str, tenant_id: str) -> str | None:
        try:
            statements = [tree for tree in sqlglot.parse(sql, read="postgres") if tree is not None]
        except SqlglotError as exc:
            logger.info("sql_guard_parse_failed error=%s", type(exc).__name__)
            return UNPARSABLE_REASON
        if len(statements) != 1:
            return SINGLE_STATEMENT_REASON

        tree = statements[0]
        cte_names = {cte.alias_or_name.lower() for cte in tree.find_all(exp.CTE)}
        for select in tree.find_all(exp.Select):
            for table in _direct_tables(select, cte_names):
                if table.name.lower() not in TENANT_TABLES:
                    logger.info("sql_guard_table_not_allowed table=%s", table.name)
                    return TABLE_NOT_ALLOWED_REASON
            if _unscoped_table(select, cte_names, tenant_id) is not None:
                return TENANT_SCOPE_REASON
        return None
