"""Tests for the SQL/Drizzle schema checker."""

import pytest

from plan_verifier.analysis.checkers.sql_schema import (
    SqlSchemaChecker,
    build_sql_schema,
    parse_drizzle_schema,
    parse_sql_schema,
)
from plan_verifier.analysis.types import HallucinationCategory

DRIZZLE = """\
import { pgTable, text, integer } from "drizzle-orm/pg-core";

export const users = pgTable("users", {
  id: text("id").primaryKey(),
  email: text("email").notNull(),
});

export const orders = pgTable("orders", (t) => ({
  id: t.integer("id"),
  total: t.integer("total"),
}));
"""

MIGRATION = """\
CREATE TABLE IF NOT EXISTS audit_log (
  id serial,
  action text,
  PRIMARY KEY (id)
);
CREATE TABLE users (id int, legacy text);
"""

PLAN = """\
```ts
await db.select().from(users).where(eq(users.emailAddress, x));
await db.insert(invoices).values({});
```

```sql
SELECT * FROM audit_log JOIN sessions ON s.id = a.id;
```
"""


@pytest.fixture
def sql_project(tmp_path, make_files):
    make_files(tmp_path, {"src/db/schema.ts": DRIZZLE, "migrations/001.sql": MIGRATION})
    return tmp_path


def test_parse_drizzle_object_and_callback_forms():
    tables = parse_drizzle_schema(DRIZZLE, "schema.ts")

    assert [(t.name, t.variable_name) for t in tables] == [("users", "users"), ("orders", "orders")]
    assert list(tables[0].columns) == ["id", "email"]
    assert tables[0].columns["email"] == "text"
    assert list(tables[1].columns) == ["id", "total"]


def test_parse_sql_skips_constraints():
    tables = parse_sql_schema(MIGRATION, "001.sql")

    assert tables[0].name == "audit_log"
    assert list(tables[0].columns) == ["id", "action"]


def test_drizzle_wins_on_conflict(sql_project):
    schema = build_sql_schema(str(sql_project))

    assert schema.tables["users"].source == "drizzle"
    assert "legacy" not in schema.tables["users"].columns
    assert set(schema.tables) == {"users", "orders", "audit_log"}


def test_checker_flags_tables_and_columns(sql_project):
    result = SqlSchemaChecker().run(PLAN, str(sql_project))

    categories = [(h.category, h.suggestion) for h in result.hallucinations]
    assert categories == [
        (HallucinationCategory.COLUMN, "email"),
        (HallucinationCategory.TABLE, None),
        (HallucinationCategory.TABLE, None),
    ]
    assert result.hallucinations[0].raw == "users.emailAddress"
    assert result.checked == 5


def test_sql_keywords_in_prose_ignored(sql_project):
    result = SqlSchemaChecker().run("Data flows from users into reports.", str(sql_project))

    assert result.checked == 0


def test_not_applicable_without_tables(tmp_path):
    result = SqlSchemaChecker().run(PLAN, str(tmp_path))

    assert result.applicable is False


def test_report_sections(sql_project):
    checker = SqlSchemaChecker()
    result = checker.run(PLAN, str(sql_project))

    report = checker.format_for_combined_report(result, str(sql_project))
    findings = checker.format_for_findings_section(result)

    assert report[0] == "## SQL/Drizzle Schema"
    assert "**Tables:** `users`, `orders`, `audit_log`" in report
    assert findings.startswith("### SQL Schema Issues")
