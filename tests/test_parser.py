"""Tests for the route source analyzer."""

import hashlib
from pathlib import Path

import pytest

from conftest import write_file
from routegen_cli.parser import ASTRouteAnalyzer, analyze_route, classify_imports


def test_analyzer_initialization(temp_dir: Path):
    """Test analyzer can be initialized with a project root."""
    analyzer = ASTRouteAnalyzer(temp_dir)
    assert analyzer.project_root == temp_dir


def test_extracts_handlers_and_support_code(sample_app: Path):
    """Test verb functions become methods and other statements are kept verbatim."""
    path = str(sample_app / "users" / "route.py")

    parsed = analyze_route(path, "users", sample_app)

    assert parsed.methods == ["GET", "POST"]
    assert [fn.name for fn in parsed.handlers] == ["GET", "POST"]
    assert parsed.support_code == ["PAGE_SIZE = 20"]
    assert parsed.body[0] == "PAGE_SIZE = 20"
    assert parsed.body[1].startswith("def GET(request):")
    assert parsed.package_name == "users"
    # Module docstring is not carried into the body
    assert not any("User collection" in block for block in parsed.body)


def test_method_names_are_case_insensitive(sample_app: Path):
    """Test a lowercase ``get`` is still the GET handler."""
    path = str(sample_app / "users" / "id_" / "route.py")

    parsed = analyze_route(path, "users/id_", sample_app)

    assert parsed.methods == ["GET", "DELETE"]
    by_name = {fn.name: fn for fn in parsed.functions}
    assert by_name["get"].method == "GET"
    assert by_name["_not_found"].method == ""
    assert by_name["_not_found"].signature == "def _not_found(user_id)"


def test_classifies_imports(sample_app: Path):
    """Test stdlib, external and local imports land in separate buckets."""
    route = sample_app / "users" / "id_" / "route.py"

    parsed = analyze_route(str(route), "users/id_", sample_app)

    assert parsed.imports == ["import json"]
    assert parsed.dependencies.stdlib_imports == ["json"]
    assert parsed.dependencies.external_imports == []
    [local] = parsed.dependencies.local_imports
    assert local.import_path == str(sample_app / "users" / "user_repo" / "user_repo.py")
    assert local.relative_path == "users/user_repo/user_repo.py"
    assert local.dotted_path == "users.user_repo.user_repo"
    assert local.names == ["find_user"]
    assert local.statement == "from users.user_repo.user_repo import find_user"


def test_external_imports_are_kept_verbatim(temp_dir: Path):
    """Test third-party imports are copied into the generated file as written."""
    path = write_file(
        temp_dir / "api" / "route.py",
        "import requests as rq\nfrom os import path\n\n\ndef GET(request):\n    return rq\n",
    )

    parsed = analyze_route(path, "api", temp_dir)

    assert parsed.imports == ["import requests as rq", "from os import path"]
    assert parsed.dependencies.external_imports == ["requests"]
    assert parsed.dependencies.stdlib_imports == ["os"]


def test_relative_imports_resolve(temp_dir: Path):
    """Test relative module and package-member imports."""
    write_file(temp_dir / "api" / "helpers.py", "def helper():\n    return 1\n")
    write_file(temp_dir / "api" / "shapes.py", "SQUARE = 4\n")
    path = write_file(
        temp_dir / "api" / "route.py",
        "from .helpers import helper\nfrom . import shapes\n\n\ndef GET(request):\n    return helper()\n",
    )

    parsed = analyze_route(path, "api", temp_dir)

    modules = {local.module: local.relative_path for local in parsed.dependencies.local_imports}
    assert modules == {".helpers": "api/helpers.py", ".shapes": "api/shapes.py"}
    assert parsed.imports == []


def test_unresolvable_import_is_external(temp_dir: Path):
    """Test a name that is not under the project root is treated as external."""
    path = write_file(temp_dir / "api" / "route.py", "import not_a_local_module\n\ndef GET(r):\n    return 1\n")

    parsed = analyze_route(path, "api", temp_dir)

    assert parsed.dependencies.local_imports == []
    assert parsed.dependencies.external_imports == ["not_a_local_module"]


def test_unresolved_imports_record_where_the_module_would_live(temp_dir: Path):
    source = "from .helpers import fmt\nfrom shared.db import connect\n\ndef GET(r):\n    return 1\n"
    path = write_file(temp_dir / "api" / "route.py", source)

    parsed = analyze_route(path, "api", temp_dir)

    assert parsed.dependencies.unresolved_modules == [
        str(temp_dir / "api" / "helpers"),
        str(temp_dir / "api" / "helpers" / "fmt"),
        str(temp_dir / "shared" / "db"),
        str(temp_dir / "shared" / "db" / "connect"),
    ]


def test_content_hash_matches_parsed_bytes(temp_dir: Path):
    source = "def GET(r):\n    return 1\n"
    path = write_file(temp_dir / "api" / "route.py", source)

    parsed = analyze_route(path, "api", temp_dir)

    assert parsed.content_hash == hashlib.md5(source.encode("utf-8")).hexdigest()


def test_syntax_error_yields_empty_parse(temp_dir: Path):
    """Test malformed input degrades instead of raising."""
    path = write_file(temp_dir / "broken" / "route.py", "def GET(request:\n    return 1\n")

    parsed = analyze_route(path, "broken", temp_dir)

    assert parsed.methods == []
    assert parsed.functions == []
    assert parsed.path == path


def test_empty_file(temp_dir: Path):
    path = write_file(temp_dir / "empty" / "route.py", "   \n")

    parsed = analyze_route(path, "empty", temp_dir)

    assert parsed.methods == []
    assert parsed.body == []


def test_async_and_decorated_functions(temp_dir: Path):
    """Test signatures keep async, annotations and decorators."""
    source = (
        "import functools\n"
        "\n"
        "\n"
        "@functools.lru_cache()\n"
        "def lookup(key):\n"
        "    return key\n"
        "\n"
        "\n"
        "async def POST(request, *, limit=10) -> dict:\n"
        "    return {'limit': limit}\n"
    )
    path = write_file(temp_dir / "items" / "route.py", source)

    parsed = analyze_route(path, "items", temp_dir)

    post = parsed.handlers[0]
    assert post.signature == "async def POST(request, *, limit=10) -> dict"
    assert post.body == "    return {'limit': limit}"
    lookup = next(fn for fn in parsed.functions if fn.name == "lookup")
    assert lookup.source.startswith("@functools.lru_cache()")


def test_duplicate_method_recorded_once(temp_dir: Path):
    path = write_file(
        temp_dir / "dup" / "route.py",
        "def GET(request):\n    return 1\n\n\ndef get(request):\n    return 2\n",
    )

    parsed = analyze_route(path, "dup", temp_dir)

    assert parsed.methods == ["GET"]
    assert len(parsed.handlers) == 2


def test_classify_imports_for_dependency_module(sample_app: Path):
    """Test import classification on a module that is not a route."""
    write_file(sample_app / "users" / "user_repo" / "audit.py", "import logging\n")
    source = "import logging\nfrom users.user_repo import audit\nimport yaml\n"

    analysis = classify_imports(source, sample_app / "users" / "user_repo" / "user_repo.py", sample_app)

    assert analysis.stdlib_imports == ["logging"]
    assert analysis.external_imports == ["yaml"]
    assert [local.relative_path for local in analysis.local_imports] == ["users/user_repo/audit.py"]


def test_read_errors_propagate(temp_dir: Path):
    """Test I/O failures are not mistaken for empty files."""
    analyzer = ASTRouteAnalyzer(temp_dir)

    with pytest.raises(OSError):
        analyzer.analyze(str(temp_dir / "missing" / "route.py"), "missing")
