"""pytest fixtures for plan-verifier tests."""

import json
from pathlib import Path

import pytest

PRISMA_SCHEMA = """\
generator client {
  provider = "prisma-client-js"
}

model User {
  id        String   @id @default(cuid())
  email     String   @unique
  name      String?
  posts     Post[]
  createdAt DateTime @default(now())
}

model Post {
  id       String @id
  title    String
  authorId String
  author   User   @relation(fields: [authorId], references: [id])
}

enum Role {
  ADMIN
  MEMBER
}
"""


def write_files(root: Path, files: dict[str, str]) -> None:
    """Create ``files`` (relative path -> content) under ``root``."""
    for rel_path, content in files.items():
        path = root / rel_path
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")


@pytest.fixture(autouse=True)
def isolated_home(tmp_path_factory, monkeypatch):
    """Point the user state directory at a throwaway home."""
    home = tmp_path_factory.mktemp("home")
    monkeypatch.setenv("HOME", str(home))
    for name in (
        "ANTHROPIC_API_KEY",
        "PLAN_VERIFIER_MODEL",
        "PLAN_VERIFIER_TOKEN_BUDGET",
        "PLAN_VERIFIER_MAX_TOKENS",
        "PLAN_VERIFIER_TOKEN_COUNTER",
        "PLAN_VERIFIER_EXPERIMENTAL",
    ):
        monkeypatch.delenv(name, raising=False)
    return home


@pytest.fixture
def project_dir(tmp_path):
    """A small TypeScript project with most kinds of ground truth."""
    root = tmp_path / "webapp"
    write_files(
        root,
        {
            "README.md": "# Webapp\n\nA sample project.\n",
            "package.json": json.dumps(
                {"name": "webapp", "dependencies": {"express": "^4.18.0", "zod": "^3.0.0"}}
            ),
            ".env.example": "DATABASE_URL=postgres://localhost/app\nAPI_KEY=changeme\n",
            "prisma/schema.prisma": PRISMA_SCHEMA,
            "src/lib/db.ts": "export const db = {};\n",
            "src/services/user-service.ts": "export function getUser() {}\n",
            "src/app/api/users/route.ts": (
                "export async function GET() {}\nexport async function POST() {}\n"
            ),
            "src/app/api/users/[id]/route.ts": "export async function GET() {}\n",
            "src/server/index.ts": (
                "import express from 'express';\n"
                "import usersRouter from './routes/users';\n"
                "const app = express();\n"
                "app.use('/v1/users', usersRouter);\n"
                "app.get('/health', (req, res) => res.send('ok'));\n"
            ),
            "src/server/routes/users.ts": (
                "import { Router } from 'express';\n"
                "const router = Router();\n"
                "router.get('/', list);\n"
                "router.get('/:id', show);\n"
                "router.post('/', create);\n"
                "export default router;\n"
            ),
            "node_modules/zod/package.json": json.dumps(
                {"name": "zod", "exports": {".": "./index.js", "./v4": "./v4/index.js"}}
            ),
            "node_modules/express/package.json": json.dumps({"name": "express", "main": "index.js"}),
        },
    )
    return root


@pytest.fixture
def prisma_schema_source():
    return PRISMA_SCHEMA


@pytest.fixture
def make_files():
    """The ``write_files`` helper, for tests that build their own project."""
    return write_files
