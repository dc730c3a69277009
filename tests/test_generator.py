"""End-to-end tests for a generation pass over the sample project."""

import importlib
import importlib.util
import sys
from dataclasses import replace
from pathlib import Path

import pytest

from conftest import bump_mtime, write_file
from routegen_cli.config_manager import load_project_config
from routegen_cli.errors import TemplateRenderError
from routegen_cli.generator import REGISTRY_FILE, RouteGenerator
from routegen_cli.models import ChangeEvent, ChangeKind
from routegen_cli.templates import TemplateRenderer


@pytest.fixture
def generated_imports(sample_app: Path, monkeypatch):
    """Make the sample project's generated package importable, then forget it."""
    monkeypatch.syspath_prepend(str(sample_app))
    yield
    for name in [name for name in sys.modules if name == "_routegen" or name.startswith("_routegen.")]:
        del sys.modules[name]
    importlib.invalidate_caches()


def _output(root: Path, folder: str) -> Path:
    return root / "_routegen" / "routes" / folder / "gen_route.py"


class EditAfterRenderRenderer(TemplateRenderer):
    """Edits one route source right after its output is written, as a save during a pass would."""

    def __init__(self, source: Path, manager, folder: str) -> None:
        super().__init__()
        self.source = source
        self.manager = manager
        self.folder = folder
        self.edited = False

    def render(self, ref, output_path, data):
        written = super().render(ref, output_path, data)
        if not self.edited and data.get("folder_path") == self.folder:
            self.edited = True
            write_file(self.source, "def GET(request):\n    return {'profiles': 'EDITED'}\n")
            bump_mtime(self.source)
            self.manager.handle_file_change(ChangeEvent(str(self.source), ChangeKind.WRITE))
        return written


def _load_registry(root: Path):
    path = root / "_routegen" / REGISTRY_FILE
    spec = importlib.util.spec_from_file_location("_routegen_registry_under_test", path)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


class TestGenerationPass:
    """Tests for RouteGenerator.generate."""

    def test_first_pass_generates_everything(self, sample_app: Path, manager):
        report = RouteGenerator(sample_app, manager=manager).generate()

        assert report.routes == 3
        assert sorted(report.generated) == ["profiles", "users", "users/id_"]
        assert set(report.reasons.values()) == {"output missing"}
        assert report.registry_written is True
        assert report.copied_dependencies == 1
        assert report.integrity.ok
        for folder in ("profiles", "users", "users/id_"):
            assert _output(sample_app, folder).is_file()
        assert not _output(sample_app, "scripts").exists()
        assert (sample_app / "_routegen" / "dependencies" / "users" / "user_repo" / "user_repo.py").is_file()

    def test_second_pass_skips_unchanged(self, sample_app: Path, manager):
        generator = RouteGenerator(sample_app, manager=manager)
        generator.generate()
        before = _output(sample_app, "users").stat().st_mtime_ns

        report = generator.generate()

        assert report.generated == []
        assert sorted(report.skipped) == ["profiles", "users", "users/id_"]
        assert report.registry_written is False
        assert _output(sample_app, "users").stat().st_mtime_ns == before

    def test_source_change_regenerates_only_that_route(self, sample_app: Path, manager):
        generator = RouteGenerator(sample_app, manager=manager)
        generator.generate()

        target = sample_app / "profiles" / "route.py"
        target.write_text("def GET(request):\n    return {'profiles': ['ada']}\n")
        bump_mtime(target)
        report = generator.generate()

        assert report.generated == ["profiles"]
        assert report.reasons["profiles"].startswith("source content changed")
        assert "'ada'" in _output(sample_app, "profiles").read_text()

    def test_dependency_change_regenerates_importers(self, sample_app: Path, manager):
        generator = RouteGenerator(sample_app, manager=manager)
        generator.generate()

        repo = sample_app / "users" / "user_repo" / "user_repo.py"
        repo.write_text(repo.read_text().replace("Grace", "Hopper"))
        bump_mtime(repo)
        report = generator.generate()

        assert sorted(report.generated) == ["users", "users/id_"]
        assert report.reasons["users"] == "dependencies changed"
        copied = sample_app / "_routegen" / "dependencies" / "users" / "user_repo" / "user_repo.py"
        assert "Hopper" in copied.read_text()

    def test_edit_during_pass_is_picked_up_next_pass(self, sample_app: Path, manager):
        """Test an edit handled while a route renders leaves that route stale."""
        source = sample_app / "profiles" / "route.py"
        renderer = EditAfterRenderRenderer(source, manager, "profiles")
        generator = RouteGenerator(sample_app, manager=manager, renderer=renderer)

        generator.generate()
        assert renderer.edited
        assert "EDITED" not in _output(sample_app, "profiles").read_text()

        report = generator.generate()

        assert report.generated == ["profiles"]
        assert report.reasons["profiles"].startswith("source content changed")
        assert "EDITED" in _output(sample_app, "profiles").read_text()

    def test_deleted_dependency_recreated_then_edited(self, sample_app: Path, manager):
        generator = RouteGenerator(sample_app, manager=manager)
        generator.generate()
        repo = sample_app / "users" / "user_repo" / "user_repo.py"
        copied = sample_app / "_routegen" / "dependencies" / "users" / "user_repo" / "user_repo.py"
        original = repo.read_text()

        repo.unlink()
        manager.handle_file_change(ChangeEvent(str(repo), ChangeKind.DELETE))
        report = generator.generate()
        assert sorted(report.generated) == ["users", "users/id_"]

        write_file(repo, original.replace("Ada", "RECREATED"))
        manager.handle_file_change(ChangeEvent(str(repo), ChangeKind.CREATE))
        report = generator.generate()

        assert sorted(report.generated) == ["users", "users/id_"]
        assert "RECREATED" in copied.read_text()
        assert (
            "from _routegen.dependencies.users.user_repo.user_repo import get_all_users"
            in _output(sample_app, "users").read_text()
        )

        write_file(repo, original.replace("Ada", "EDITED"))
        bump_mtime(repo)
        manager.handle_file_change(ChangeEvent(str(repo), ChangeKind.WRITE))
        report = generator.generate()

        assert sorted(report.generated) == ["users", "users/id_"]
        assert "EDITED" in copied.read_text()

    def test_missing_output_is_regenerated(self, sample_app: Path, manager):
        generator = RouteGenerator(sample_app, manager=manager)
        generator.generate()

        _output(sample_app, "profiles").unlink()
        report = generator.generate()

        assert report.generated == ["profiles"]
        assert report.reasons["profiles"] == "output missing"

    def test_new_route_rewrites_registry(self, sample_app: Path, manager):
        generator = RouteGenerator(sample_app, manager=manager)
        generator.generate()

        write_file(sample_app / "orders" / "route.py", "def GET(request):\n    return []\n")
        report = generator.generate()

        assert report.generated == ["orders"]
        assert report.registry_written is True
        assert "'/orders'" in generator.registry_path.read_text()

    def test_config_change_regenerates_everything(self, sample_app: Path, manager):
        RouteGenerator(sample_app, manager=manager).generate()
        config = replace(load_project_config(sample_app), module="app")

        report = RouteGenerator(sample_app, config=config, manager=manager).generate()

        assert set(report.reasons.values()) == {"config changed"}
        assert report.registry_written is True
        assert "from app._routegen.dependencies" in _output(sample_app, "users").read_text()

    def test_render_failure_propagates(self, sample_app: Path, manager, temp_dir: Path):
        templates = temp_dir / "broken_templates"
        write_file(templates / "route.py.j2", "{{ missing_variable }}\n")
        write_file(templates / "registry.py.j2", "ROUTES = []\n")
        generator = RouteGenerator(sample_app, manager=manager, renderer=TemplateRenderer(templates))

        with pytest.raises(TemplateRenderError):
            generator.generate()


class TestGeneratedCode:
    """Tests that run the emitted modules."""

    def test_route_module_contents(self, sample_app: Path, manager):
        RouteGenerator(sample_app, manager=manager).generate()

        text = _output(sample_app, "users").read_text()

        assert text.startswith("# Code generated by routegen from users/route.py. DO NOT EDIT.")
        assert "from _routegen.dependencies.users.user_repo.user_repo import get_all_users" in text
        assert "PAGE_SIZE = 20" in text
        assert "\"api_path\": '/users'" in text
        compile(text, "gen_route.py", "exec")

    def test_registry_loads_and_resolves(self, sample_app: Path, manager, generated_imports):
        RouteGenerator(sample_app, manager=manager).generate()
        registry = _load_registry(sample_app)

        modules = registry.load_routes()

        assert sorted(modules) == ["/profiles", "/users", "/users/:id"]

        handler, params = registry.resolve(modules, "GET", "/users/2")
        assert params == {"id": "2"}
        assert handler({"params": params}) == {"id": "2", "name": "Grace"}

        handler, params = registry.resolve(modules, "get", "/users")
        assert params == {}
        assert len(handler({})["users"]) == 2

        assert registry.resolve(modules, "PATCH", "/users") == (None, {})
        assert registry.resolve(modules, "GET", "/nowhere") == (None, {})

    def test_handler_helpers_are_kept(self, sample_app: Path, manager, generated_imports):
        RouteGenerator(sample_app, manager=manager).generate()
        modules = _load_registry(sample_app).load_routes()

        user_module = modules["/users/:id"]

        assert set(user_module.HANDLERS) == {"GET", "DELETE"}
        assert user_module.ROUTE["parameters"] == ["id"]
        assert user_module.HANDLERS["GET"]({"params": {"id": "9"}})[0] == 404
