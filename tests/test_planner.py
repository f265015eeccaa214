"""
Tests for the plan builder — step order, ids, structural rules.
"""

import pytest

from mcp_installer.core.models import (
    Analysis,
    GitSource,
    InstallMethod,
    InstallOptions,
    Language,
    LocalSource,
    PrepareDirectory,
    ServerType,
    StepKind,
    TemplateSource,
    Verify,
)
from mcp_installer.core.services.planner import (
    PlanError,
    build_plan,
    container_name,
    dependency_step,
    validate_plan,
)

FOO = GitSource(url="https://github.com/example/foo-mcp")


def _analysis(**overrides) -> Analysis:
    fields = dict(
        source=FOO,
        repo_name="foo-mcp",
        owner="example",
        origin=FOO,
        language=Language.JAVASCRIPT,
        config_file_candidates=("config.json",),
        recommended_method=InstallMethod.NPX,
        install_commands_hint=frozenset({"npm install"}),
    )
    fields.update(overrides)
    return Analysis(**fields)


class TestBuildPlan:
    def test_npx_plan(self):
        plan = build_plan(_analysis())

        assert plan.step_ids() == ["prepare-directory", "clone", "npm-install", "write-config", "verify"]
        assert plan.install_path == "/opt/mcp/servers/foo-mcp"
        assert plan.method == InstallMethod.NPX
        clone = plan.get_step("clone")
        assert clone.url == FOO.url
        assert clone.target_path == plan.install_path
        assert plan.get_step("npm-install").scripts == []

    def test_build_script_runs_when_hinted(self):
        plan = build_plan(_analysis(install_commands_hint=frozenset({"npm install", "npm run build"})))
        assert plan.get_step("npm-install").scripts == ["build"]

    def test_docker_plan(self):
        plan = build_plan(_analysis(
            has_container_manifest=True,
            recommended_method=InstallMethod.DOCKER,
        ))

        assert plan.step_ids() == [
            "prepare-directory", "clone", "docker-build", "docker-run", "write-config", "verify",
        ]
        build = plan.get_step("docker-build")
        run = plan.get_step("docker-run")
        assert build.image_tag == "mcp-foo-mcp"
        assert run.container_name == "mcp-foo-mcp"
        assert run.port_bindings == {3000: 3000}
        assert run.volume_bindings == {plan.install_path: "/app/data"}
        assert not plan.steps_of(StepKind.NPM_INSTALL)

    def test_docker_uses_declared_port(self):
        plan = build_plan(
            _analysis(recommended_method=InstallMethod.DOCKER, declared_port=8080),
            InstallOptions(port=9000),
        )
        assert plan.get_step("docker-run").port_bindings == {9000: 8080}
        assert plan.declared_port == 9000

    def test_python_plan(self):
        plan = build_plan(_analysis(language=Language.PYTHON, recommended_method=InstallMethod.PYTHON))
        step = plan.get_step("pip-install")
        assert step.installer == "pip"
        assert step.requirements_file == "requirements.txt"

    def test_uv_method(self):
        plan = build_plan(_analysis(language=Language.PYTHON), InstallOptions(method=InstallMethod.UV))
        assert plan.method == InstallMethod.UV
        assert plan.get_step("pip-install").installer == "uv"

    def test_unknown_language_detects_type(self):
        plan = build_plan(_analysis(language=Language.UNKNOWN))
        assert plan.step_ids() == [
            "prepare-directory", "clone", "detect-server-type", "write-config", "verify",
        ]
        assert plan.server_entry.type == ServerType.UNKNOWN

    def test_dependency_step_per_runtime(self):
        npm = dependency_step(ServerType.NODE, InstallMethod.NPX, "/opt/x", build=True)
        assert npm.id == "npm-install"
        assert npm.scripts == ["build"]
        assert npm.cwd == "/opt/x"
        pip = dependency_step(ServerType.PYTHON, InstallMethod.UV, "/opt/x")
        assert pip.id == "pip-install"
        assert pip.installer == "uv"
        assert dependency_step(ServerType.UNKNOWN, InstallMethod.NPX, "/opt/x") is None

    def test_local_source_installs_in_place(self):
        local = LocalSource(path="/srv/my-server")
        plan = build_plan(_analysis(source=local, origin=None, repo_name="my-server"))
        assert plan.install_path == "/srv/my-server"
        assert not plan.steps_of(StepKind.CLONE)

    def test_template_source_clones_origin(self):
        origin = GitSource(url="https://github.com/GongRzhe/JSON-MCP-Server")
        plan = build_plan(_analysis(
            source=TemplateSource(template_id="basic-api"), origin=origin, repo_name="basic-api",
        ))
        assert plan.install_path == "/opt/mcp/servers/basic-api"
        assert plan.get_step("clone").url == origin.url

    def test_options_override(self):
        plan = build_plan(_analysis(), InstallOptions(
            install_path="/data/foo", server_name="foo", port=3050, environment={"A": "1"},
        ))
        assert plan.install_path == "/data/foo"
        entry = plan.server_entry
        assert entry.name == "foo"
        assert entry.id == "mcp-foo-mcp"
        assert entry.config.port == 3050
        assert entry.config.environment == {"A": "1"}
        assert entry.install_path == "/data/foo"

    def test_write_config_opt_out(self):
        plan = build_plan(_analysis(), InstallOptions(write_config=False))
        assert not plan.steps_of(StepKind.WRITE_CONFIG)
        assert plan.server_entry is None

    def test_write_config_without_candidates(self):
        """The step still carries the server entry when no config file was found."""
        plan = build_plan(_analysis(config_file_candidates=()))
        step = plan.get_step("write-config")
        assert step.config_file_candidates == []
        assert step.server_entry.install_method == InstallMethod.NPX

    def test_windows_paths(self):
        plan = build_plan(_analysis(), platform="windows")
        assert plan.install_path == "C:\\MCP\\Servers\\foo-mcp"
        assert plan.get_step("clone").target_path == "C:\\MCP\\Servers\\foo-mcp"

    def test_deterministic(self):
        a = build_plan(_analysis())
        b = build_plan(_analysis())
        assert [s.model_dump(exclude={"server_entry"}) for s in a.steps] == [
            s.model_dump(exclude={"server_entry"}) for s in b.steps
        ]

    def test_container_name(self):
        assert container_name("Foo-MCP") == "mcp-foo-mcp"


class TestValidatePlan:
    def test_rejects_path_outside_install_dir(self):
        plan = build_plan(_analysis())
        plan.steps.insert(1, PrepareDirectory(id="elsewhere", path="/etc/other"))
        with pytest.raises(PlanError, match="outside"):
            validate_plan(plan)

    def test_rejects_duplicate_ids(self):
        plan = build_plan(_analysis())
        plan.steps.append(Verify(id="verify", path=plan.install_path))
        with pytest.raises(PlanError, match="unique"):
            validate_plan(plan)

    def test_rejects_bad_first_step(self):
        plan = build_plan(_analysis())
        plan.steps.pop(0)
        plan.steps.pop(0)
        with pytest.raises(PlanError, match="begin"):
            validate_plan(plan)

    def test_rejects_docker_steps_in_npx_plan(self):
        docker = build_plan(_analysis(recommended_method=InstallMethod.DOCKER))
        plan = build_plan(_analysis())
        plan.steps.insert(2, docker.get_step("docker-build"))
        with pytest.raises(PlanError, match="cannot contain docker"):
            validate_plan(plan)

    def test_collects_every_problem(self):
        plan = build_plan(_analysis())
        plan.steps.append(Verify(id="verify", path="/elsewhere"))
        with pytest.raises(PlanError) as exc:
            validate_plan(plan)
        assert len(exc.value.problems) == 2
