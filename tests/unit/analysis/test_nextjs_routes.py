"""Tests for the Next.js App Router route checker."""

from plan_verifier.analysis.checkers.nextjs_routes import (
    ApiRoute,
    NextjsRoutesChecker,
    analyze_api_routes,
    build_route_index,
    file_path_to_url_path,
    match_route,
    parse_route_methods,
)
from plan_verifier.analysis.types import HallucinationCategory

PLAN = """\
```ts
await fetch('/api/users');
await fetch('/api/users/123');
```

Call DELETE /api/users to remove everyone, then hit `/api/orders`.
"""


def test_file_path_to_url_path():
    assert file_path_to_url_path("src/app/api/users/route.ts") == "/api/users"
    assert file_path_to_url_path("app/(auth)/api/login/route.js") == "/api/login"
    assert file_path_to_url_path("src/pages/index.ts") is None


def test_parse_route_methods():
    content = "export async function GET() {}\nexport const POST = handler;\nexport function GET() {}\n"

    assert parse_route_methods(content) == ["GET", "POST"]


def test_build_route_index(project_dir):
    index = build_route_index(str(project_dir))

    assert set(index) == {"/api/users", "/api/users/[id]"}
    assert index["/api/users"].methods == ["GET", "POST"]


def test_match_route_dynamic_and_catch_all():
    index = {
        "/api/users/[id]": ApiRoute("/api/users/[id]", "a/route.ts", ["GET"]),
        "/api/files/[...slug]": ApiRoute("/api/files/[...slug]", "b/route.ts", ["GET"]),
    }

    assert match_route("/api/users/42", index).file_path == "a/route.ts"
    assert match_route("/api/files/a/b/c", index).file_path == "b/route.ts"
    assert match_route("/api/users/42/posts", index) is None


def test_analyze_api_routes(project_dir):
    analysis = analyze_api_routes(PLAN, str(project_dir))

    assert analysis.checked_refs == 4
    assert analysis.valid_refs == 2
    assert [(h.raw, h.category, h.suggestion) for h in analysis.hallucinations] == [
        ("DELETE /api/users", HallucinationCategory.METHOD_NOT_ALLOWED, "GET, POST"),
        ("/api/orders", HallucinationCategory.ROUTE, None),
    ]


def test_checker_not_applicable_without_app_router(tmp_path):
    result = NextjsRoutesChecker().run(PLAN, str(tmp_path))

    assert result.applicable is False


def test_report_formatting(project_dir):
    checker = NextjsRoutesChecker()
    result = checker.run(PLAN, str(project_dir))

    report = checker.format_for_combined_report(result, str(project_dir))
    findings = checker.format_for_findings_section(result)

    assert report[0] == "## API Routes"
    assert "**Routes:** `/api/users/[id]` [GET], `/api/users` [GET,POST]" in report
    assert "- `DELETE /api/users` — method not allowed (valid methods: GET, POST)" in findings
    assert "- `/api/orders` — route not found" in findings
