"""Tests for the ReconciliationEngine — pure logic over on-disk workspaces."""

from __future__ import annotations

import pytest

from depdrift.engine import ReconciliationEngine
from depdrift.exclusions import build_exclusions, resolve_exclusions
from depdrift.models import (
    ANY_RANGE,
    WORKSPACE_RANGE,
    DependencyGroup,
    ExclusionSet,
    PlanMode,
)
from depdrift.workspace import WorkspaceGraph
from depdrift.writer import PackageJsonWriter


def _engine(root) -> ReconciliationEngine:
    return ReconciliationEngine(WorkspaceGraph.load(root))


# ── compute_missing ──────────────────────────────────────────────────────


class TestComputeMissing:
    def test_scenario_a_nothing_declared(self, make_workspace):
        engine = _engine(make_workspace())
        root = engine.graph.root_package()
        missing = engine.compute_missing(root, ["lodash", "@scope/utils"], ExclusionSet())
        assert set(missing) == {"lodash", "@scope/utils"}

    def test_disjoint_exclusions_subtracted(self, make_workspace):
        engine = _engine(make_workspace())
        root = engine.graph.root_package()
        used = ["react", "vue", "lodash", "axios"]
        ex = ExclusionSet.of(["vue", "axios"])
        assert engine.compute_missing(root, used, ex) == ["react", "lodash"]

    def test_idempotent(self, make_workspace):
        engine = _engine(make_workspace())
        root = engine.graph.root_package()
        used = ["b", "a", "c", "a"]
        ex = ExclusionSet.of(["c"])
        first = engine.compute_missing(root, used, ex)
        assert first == engine.compute_missing(root, used, ex) == ["b", "a"]

    def test_subpaths_normalized_and_deduplicated(self, make_workspace):
        engine = _engine(make_workspace())
        root = engine.graph.root_package()
        used = ["lodash/fp", "lodash", "@scope/utils/deep", "@scope/utils"]
        assert engine.compute_missing(root, used, ExclusionSet()) == ["lodash", "@scope/utils"]

    def test_glob_exclusion(self, make_workspace):
        engine = _engine(make_workspace())
        root = engine.graph.root_package()
        ex = ExclusionSet.of(["@types/*", "eslint-*"])
        used = ["@types/node", "eslint-plugin-react", "react"]
        assert engine.compute_missing(root, used, ex) == ["react"]

    def test_raw_subpath_exclusion(self, make_workspace):
        engine = _engine(make_workspace())
        root = engine.graph.root_package()
        ex = ExclusionSet.of(["lodash/fp"])
        assert engine.compute_missing(root, ["lodash/fp"], ex) == []

    def test_self_never_missing(self, make_workspace):
        root_dir = make_workspace(members={"packages/a": {"name": "@myworkspace/pkg-a"}})
        engine = _engine(root_dir)
        pkg_a = engine.graph.package_by_identity("@myworkspace/pkg-a")
        ex = build_exclusions(pkg_a, ["anything-else"])
        used = ["@myworkspace/pkg-a", "@myworkspace/pkg-a/sub", "@myworkspace/pkg-a/*"]
        assert engine.compute_missing(pkg_a, used, ex) == []

    def test_declared_by_target_not_missing(self, make_workspace):
        root_dir = make_workspace(
            members={
                "packages/a": {
                    "name": "a",
                    "dependencies": {"react": "^18.0.0"},
                    "devDependencies": {"jest": "^29.0.0"},
                }
            }
        )
        engine = _engine(root_dir)
        pkg_a = engine.graph.package_by_identity("a")
        assert engine.compute_missing(pkg_a, ["react", "jest", "vue"], ExclusionSet()) == ["vue"]

    def test_member_only_sees_own_declarations(self, make_workspace):
        root_dir = make_workspace(
            members={
                "packages/a": {"name": "a", "dependencies": {"react": "^18.0.0"}},
                "packages/b": {"name": "b"},
            }
        )
        engine = _engine(root_dir)
        pkg_b = engine.graph.package_by_identity("b")
        assert engine.compute_missing(pkg_b, ["react"], ExclusionSet()) == ["react"]

    def test_root_sees_all_declarations(self, make_workspace):
        root_dir = make_workspace(
            members={"packages/a": {"name": "a", "dependencies": {"react": "^18.0.0"}}}
        )
        engine = _engine(root_dir)
        root = engine.graph.root_package()
        assert engine.compute_missing(root, ["react", "vue"], ExclusionSet()) == ["vue"]

    def test_scenario_b_member_used_by_itself_excluded(self, make_workspace):
        root_dir = make_workspace(members={"packages/a": {"name": "@myworkspace/pkg-a"}})
        engine = _engine(root_dir)
        pkg_a = engine.graph.package_by_identity("@myworkspace/pkg-a")
        ex = build_exclusions(pkg_a)
        assert engine.compute_missing(pkg_a, ["@myworkspace/pkg-a"], ex) == []

    def test_scenario_c_base_url_alias(self, make_workspace):
        root_dir = make_workspace(members={"packages/a": {"name": "a"}})
        pkg_dir = root_dir / "packages" / "a"
        (pkg_dir / "src" / "utils").mkdir(parents=True)
        (pkg_dir / "tsconfig.json").write_text('{"compilerOptions": {"baseUrl": "src"}}')

        engine = _engine(root_dir)
        pkg_a = engine.graph.package_by_identity("a")
        used = ["utils", "utils/strings", "left-pad"]
        missing = engine.compute_missing(pkg_a, used, resolve_exclusions(pkg_a))
        assert missing == ["left-pad"]


# ── plan_edits ───────────────────────────────────────────────────────────


class TestPlanEdits:
    @pytest.fixture
    def workspace(self, make_workspace):
        return make_workspace(
            members={
                "packages/a": {"name": "@myworkspace/pkg-a", "dependencies": {"axios": "^1.0.0"}},
                "packages/b": {"name": "@myworkspace/pkg-b", "devDependencies": {"axios": "^1.0.0"}},
                "packages/c": {"name": "@myworkspace/pkg-c"},
            }
        )

    def test_scenario_d_reuses_declared_range(self, workspace):
        engine = _engine(workspace)
        pkg_c = engine.graph.package_by_identity("@myworkspace/pkg-c")
        edits = engine.plan_edits(pkg_c, ["axios"], PlanMode.TARGET_ONLY)
        assert len(edits) == 1
        assert edits[0].package == pkg_c
        assert edits[0].identity == "axios"
        assert edits[0].range == "^1.0.0"
        assert edits[0].group is DependencyGroup.REGULAR

    def test_scenario_b_member_gets_workspace_range(self, workspace):
        engine = _engine(workspace)
        pkg_c = engine.graph.package_by_identity("@myworkspace/pkg-c")
        edits = engine.plan_edits(pkg_c, ["@myworkspace/pkg-a"], PlanMode.TARGET_ONLY)
        assert edits[0].range == WORKSPACE_RANGE

    def test_unknown_gets_any_range(self, workspace):
        engine = _engine(workspace)
        pkg_c = engine.graph.package_by_identity("@myworkspace/pkg-c")
        assert engine.plan_edits(pkg_c, ["left-pad"], PlanMode.TARGET_ONLY)[0].range == ANY_RANGE

    def test_first_declaration_wins(self, make_workspace):
        root_dir = make_workspace(
            members={
                "packages/a": {"name": "a", "devDependencies": {"axios": "^0.27.0"}},
                "packages/b": {"name": "b", "dependencies": {"axios": "^1.6.0"}},
                "packages/c": {"name": "c"},
            }
        )
        engine = _engine(root_dir)
        pkg_c = engine.graph.package_by_identity("c")
        ranges = {engine.plan_edits(pkg_c, ["axios"], PlanMode.TARGET_ONLY)[0].range for _ in range(5)}
        assert ranges == {"^0.27.0"}

    def test_regular_group_before_development_within_package(self, make_workspace):
        root_dir = make_workspace(
            root={"devDependencies": {"zod": "^3.0.0"}, "dependencies": {"zod": "^3.22.0"}},
        )
        engine = _engine(root_dir)
        assert engine.resolve_range("zod") == "^3.22.0"

    def test_root_only_targets_root_manifest(self, workspace):
        engine = _engine(workspace)
        root = engine.graph.root_package()
        edits = engine.plan_edits(root, ["axios", "left-pad"], PlanMode.ROOT_ONLY)
        assert all(e.package == root for e in edits)

    def test_mode_for_target(self, workspace):
        graph = WorkspaceGraph.load(workspace)
        assert PlanMode.for_target(graph, graph.root_package()) is PlanMode.ROOT_ONLY
        pkg_c = graph.package_by_identity("@myworkspace/pkg-c")
        assert PlanMode.for_target(graph, pkg_c) is PlanMode.TARGET_ONLY

    def test_duplicates_planned_once(self, workspace):
        engine = _engine(workspace)
        pkg_c = engine.graph.package_by_identity("@myworkspace/pkg-c")
        edits = engine.plan_edits(pkg_c, ["axios", "axios"], PlanMode.TARGET_ONLY)
        assert [e.identity for e in edits] == ["axios"]


class TestScannerBootstrap:
    def test_planned_as_dev_dependency_of_root(self, make_workspace):
        engine = _engine(make_workspace())
        edit = engine.plan_scanner_bootstrap("depcheck", "^1.4.2")
        assert edit is not None
        assert edit.package == engine.graph.root_package()
        assert edit.group is DependencyGroup.DEVELOPMENT
        assert edit.range == "^1.4.2"

    def test_skipped_when_declared(self, make_workspace):
        engine = _engine(make_workspace(root={"devDependencies": {"depcheck": "^1.4.7"}}))
        assert engine.plan_scanner_bootstrap("depcheck", "^1.4.2") is None


# ── round trip ───────────────────────────────────────────────────────────


class TestRoundTrip:
    @pytest.mark.parametrize("target_name", ["@myworkspace/root", "b"])
    def test_applied_edits_clear_missing(self, make_workspace, target_name):
        root_dir = make_workspace(
            members={
                "packages/a": {"name": "a", "dependencies": {"axios": "^1.0.0"}},
                "packages/b": {"name": "b"},
            }
        )
        used = ["axios", "a", "left-pad/lib/x"]
        graph = WorkspaceGraph.load(root_dir)
        target = graph.package_by_identity(target_name)
        engine = ReconciliationEngine(graph)
        missing = engine.compute_missing(target, used, ExclusionSet())
        assert missing

        edits = engine.plan_edits(target, missing, PlanMode.for_target(graph, target))
        PackageJsonWriter(root_dir).apply(edits)

        graph = WorkspaceGraph.load(root_dir)
        target = graph.package_by_identity(target_name)
        assert ReconciliationEngine(graph).compute_missing(target, used, ExclusionSet()) == []
