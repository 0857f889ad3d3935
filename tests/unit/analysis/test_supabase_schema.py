"""Tests for the Supabase schema checker."""

import pytest

from plan_verifier.analysis.checkers.supabase_schema import (
    SupabaseSchemaChecker,
    find_supabase_types_file,
    parse_supabase_schema,
)
from plan_verifier.analysis.types import HallucinationCategory

TYPES = """\
export type Json = string | number | boolean | null

export type Database = {
  public: {
    Tables: {
      profiles: {
        Row: {
          id: string
          username: string | null
        }
        Insert: {
          id: string
        }
        Relationships: []
      }
      posts: {
        Row: {
          id: number
          author_id: string
        }
      }
    }
    Functions: {
      get_feed: {
        Args: { user_id: string }
        Returns: Json
      }
    }
    Enums: {
      role: "admin" | "member"
    }
  }
}
"""

PLAN = """\
```ts
const { data } = await supabase.from('profiles').select('id, name').eq('id', uid);
await supabase.from('comments').select('*');
await supabase.rpc('get_feed', { user_id });
await supabase.rpc('get_timeline');
```
"""


@pytest.fixture
def supabase_project(tmp_path, make_files):
    make_files(tmp_path, {"src/types/supabase.ts": TYPES, "src/index.ts": "export {};\n"})
    return tmp_path


def test_parse_supabase_schema():
    schema = parse_supabase_schema(TYPES)

    assert list(schema.tables) == ["profiles", "posts"]
    assert schema.tables["profiles"] == {"id": "string", "username": "string | null"}
    assert schema.functions["get_feed"].args == {"user_id": "string"}
    assert schema.functions["get_feed"].return_type == "Json"
    assert schema.enums == {"role": ["admin", "member"]}


def test_find_types_file(supabase_project):
    assert find_supabase_types_file(str(supabase_project)) == "src/types/supabase.ts"


def test_checker_flags_tables_columns_and_functions(supabase_project):
    result = SupabaseSchemaChecker().run(PLAN, str(supabase_project))

    assert result.checked == 6
    assert [(h.raw, h.category, h.suggestion) for h in result.hallucinations] == [
        (".from('comments')", HallucinationCategory.TABLE, None),
        (".select('...name...')", HallucinationCategory.COLUMN, "username"),
        (".rpc('get_timeline')", HallucinationCategory.FUNCTION, None),
    ]


def test_columns_need_a_preceding_from(supabase_project):
    plan = "```ts\nquery.select('nickname');\n```"

    result = SupabaseSchemaChecker().run(plan, str(supabase_project))

    assert result.checked == 0


def test_not_applicable_without_types(tmp_path):
    assert SupabaseSchemaChecker().run(PLAN, str(tmp_path)).applicable is False


def test_report_lists_columns_for_bad_column(supabase_project):
    checker = SupabaseSchemaChecker()
    result = checker.run(PLAN, str(supabase_project))

    report = checker.format_for_combined_report(result, str(supabase_project))

    assert "**Source:** `src/types/supabase.ts`" in report
    assert "  - Columns on profiles: `id`, `username`" in report
    assert "**Tables:** `profiles`, `posts`" in report
