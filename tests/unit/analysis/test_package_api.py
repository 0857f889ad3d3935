"""Tests for the experimental package API checker."""

import json

import pytest

from plan_verifier.analysis.checkers.package_api import (
    PackageApiChecker,
    extract_import_bindings,
    parse_exported_api,
    resolve_types_entrypoint,
)
from plan_verifier.analysis.types import HallucinationCategory

DTS = """\
export declare function createClient(url: string): Client;
export declare class Client {
  query(sql: string): Promise<unknown>;
  close(): void;
}
export { helper as util };
export * from "./extra";
"""

EXTRA_DTS = "export declare const VERSION: string;\n"

PLAN = """\
```ts
import { createClient, Client, connect } from "acme";
import * as acme from "acme";

const c = new Client();
Client.query("x");
Client.execute("y");
acme.createClient("u");
acme.destroy();
```
"""


@pytest.fixture
def acme_project(tmp_path, make_files):
    make_files(
        tmp_path,
        {
            "node_modules/acme/package.json": json.dumps({"name": "acme", "types": "index.d.ts"}),
            "node_modules/acme/index.d.ts": DTS,
            "node_modules/acme/extra.d.ts": EXTRA_DTS,
        },
    )
    return tmp_path


def test_extract_import_bindings():
    plan = (
        "```ts\nimport React, { useState as useS } from 'react';\n"
        "const { join: j } = require('lodash');\nimport x from './local';\n```"
    )

    bindings = extract_import_bindings(plan)

    assert [(b.local_name, b.kind, b.export_name) for b in bindings] == [
        ("React", "default", "React"),
        ("useS", "named", "useState"),
        ("j", "named", "join"),
    ]


def test_parse_exported_api_follows_reexports(acme_project):
    entry = resolve_types_entrypoint(acme_project / "node_modules" / "acme")

    api = parse_exported_api(entry.read_text(), entry, entry.parent)

    assert list(api.exports) == ["createClient", "Client", "util", "VERSION"]
    assert api.members["Client"] == {"query": "method", "close": "method"}


def test_checker_flags_exports_and_members(acme_project):
    result = PackageApiChecker().run(PLAN, str(acme_project))

    assert result.checked == 7
    assert [(h.raw, h.category) for h in result.hallucinations] == [
        ("import { connect } from 'acme'", HallucinationCategory.EXPORT),
        ("Client.execute", HallucinationCategory.MEMBER_NOT_FOUND),
        ("acme.destroy", HallucinationCategory.MEMBER_NOT_FOUND),
    ]


def test_checker_is_experimental():
    assert PackageApiChecker.experimental is True


def test_not_applicable_without_types(tmp_path):
    assert PackageApiChecker().run(PLAN, str(tmp_path)).applicable is False


def test_report_lists_available_exports(acme_project):
    checker = PackageApiChecker()
    result = checker.run(PLAN, str(acme_project))

    report = checker.format_for_combined_report(result, str(acme_project))

    assert "  - Available exports: createClient, Client, util, VERSION" in report
