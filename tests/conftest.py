"""
Shared fixtures for the CodeLedger test suite.
"""

import sys
import warnings
from pathlib import Path

import pytest

# Filter deprecation warnings from pytest-asyncio; we cannot fix the library.
warnings.filterwarnings(
    "ignore",
    category=DeprecationWarning,
    module="pytest_asyncio",
)

# Ensure the src/ directory is on the import path so that
# codeledger.core.store / codeledger.client / etc. can be imported.
SRC_ROOT = Path(__file__).resolve().parent.parent / "src"
sys.path.insert(0, str(SRC_ROOT))

from codeledger.client import CodeLedger  # noqa: E402
from codeledger.core.config import LedgerConfig  # noqa: E402
from codeledger.core.store import EntityStore  # noqa: E402


# =============================================================================
# Fixtures — sample source snippets
# =============================================================================

@pytest.fixture
def express_source() -> str:
    """Express routes with and without a leading comment."""
    return (
        "const express = require('express');\n"
        "const app = express();\n"
        "\n"
        "// Get all users\n"
        "app.get('/api/users', handler)\n"
        "\n"
        "app.post(\"/api/users\", createUser)\n"
    )


@pytest.fixture
def nest_controller_source() -> str:
    """NestJS controller with decorated handlers."""
    return (
        "@Controller('cats')\n"
        "export class CatsController {\n"
        "  /**\n"
        "   * List every cat\n"
        "   */\n"
        "  @Get('/cats')\n"
        "  async findAll(): Promise<Cat[]> {\n"
        "    return this.cats;\n"
        "  }\n"
        "\n"
        "  @Post('/cats')\n"
        "  create(@Body() dto: CreateCatDto) {\n"
        "    this.cats.push(dto);\n"
        "  }\n"
        "}\n"
    )


@pytest.fixture
def add_source() -> str:
    """The canonical three-line TypeScript function."""
    return "function add(a: number, b: number): number {\n  return a + b;\n}"


@pytest.fixture
def documented_source() -> str:
    """Functions with labeled and unlabeled comments."""
    return (
        "// Loads a user record\n"
        "// from the primary database\n"
        "export async function loadUser(id: string, cache?: boolean): Promise<User> {\n"
        "  if (cache) {\n"
        "    return fromCache(id);\n"
        "  }\n"
        "  return db.find(id);\n"
        "}\n"
        "\n"
        "/**\n"
        " * @description Formats a price for display\n"
        " * @purpose Keep currency rendering consistent\n"
        " * @param amount value in cents\n"
        " */\n"
        "function formatPrice(amount: number, currency = 'EUR') {\n"
        "  return `${amount / 100} ${currency}`;\n"
        "}\n"
    )


# =============================================================================
# Fixtures — store, ledger and project tree
# =============================================================================

@pytest.fixture
def config(tmp_path) -> LedgerConfig:
    """LedgerConfig pointing at a throwaway database."""
    return LedgerConfig(db_path=str(tmp_path / "db" / "ledger.sqlite"))


@pytest.fixture
def store(tmp_path):
    """A fresh EntityStore, closed after the test."""
    s = EntityStore(tmp_path / "store.sqlite")
    yield s
    s.close()


@pytest.fixture
def ledger(config):
    """CodeLedger client over a fresh database."""
    lg = CodeLedger(config)
    yield lg
    lg.close()


@pytest.fixture
def tmp_project(tmp_path) -> Path:
    """
    A small JS/TS project tree, including folders that must never be
    walked (``.git``, ``node_modules``) and a non-source file.
    """
    root = tmp_path / "shop"
    (root / "src" / "routes").mkdir(parents=True)
    (root / "node_modules" / "lib").mkdir(parents=True)
    (root / ".git" / "hooks").mkdir(parents=True)

    (root / "src" / "routes" / "users.ts").write_text(
        "// Get all users\n"
        "app.get('/api/users', listUsers)\n"
        "\n"
        "export function listUsers(req: Request, res: Response): void {\n"
        "  res.json([]);\n"
        "}\n",
        encoding="utf-8",
    )
    (root / "src" / "server.js").write_text(
        "const start = (port) => {\n"
        "  console.log(port);\n"
        "};\n",
        encoding="utf-8",
    )
    (root / "README.md").write_text("# shop\n", encoding="utf-8")
    (root / "node_modules" / "lib" / "index.js").write_text(
        "function hidden() {}\n", encoding="utf-8",
    )
    (root / ".git" / "hooks" / "pre-commit.js").write_text(
        "function hook() {}\n", encoding="utf-8",
    )
    return root
