from __future__ import annotations

from pathlib import Path

import pytest

from oci_policy_audit import cli
from oci_policy_audit.auth.providers import AuthContext
from oci_policy_audit.util.errors import ConnectivityError, ExitCode


def _ctx() -> AuthContext:
    return AuthContext(
        method="config",
        config_dict={"tenancy": "root", "region": "us-ashburn-1"},
        signer=None,
        profile="DEFAULT",
        tenancy_ocid="root",
    )


@pytest.fixture
def wired(monkeypatch, scenario_a):
    monkeypatch.setattr(cli, "_resolve_auth", lambda cfg, profile=None: _ctx())
    monkeypatch.setattr(cli, "_build_directory_client", lambda ctx: scenario_a)
    return scenario_a


def _main(argv) -> int:
    with pytest.raises(SystemExit) as excinfo:
        cli.main(argv)
    return excinfo.value.code


def test_run_writes_both_reports(tmp_path: Path, wired, capsys) -> None:
    code = _main(["run", "--outdir", str(tmp_path), "--no-interactive"])

    assert code == 0
    details = list(tmp_path.glob("oci_policies_complete_*.txt"))
    summaries = list(tmp_path.glob("oci_policies_summary_*.txt"))
    assert len(details) == 1
    assert len(summaries) == 1
    detail_text = details[0].read_text(encoding="utf-8")
    summary_text = summaries[0].read_text(encoding="utf-8")
    assert "#  Tenancy     : Root" in detail_text
    assert "#  Environment : Local (profile: DEFAULT)" in detail_text
    assert "[ROOT] Root" in detail_text
    assert "    └── Apps" in detail_text
    assert "  Policy coverage: 33%" in summary_text
    assert f"Detail file: {details[0].name}" in summary_text
    out = capsys.readouterr().out
    assert "GENERAL STATISTICS" in out
    # policies were fetched once per compartment even though the detail report lists them
    assert wired.policy_calls == ["root", "a", "b"]


def test_run_survives_per_compartment_failures(tmp_path: Path, wired) -> None:
    wired.fail_children.add("a")
    wired.fail_policies.add("root")

    code = _main(["--outdir", str(tmp_path), "--no-progress", "--no-interactive"])

    assert code == 0
    summary_text = next(tmp_path.glob("oci_policies_summary_*.txt")).read_text(encoding="utf-8")
    assert "  Compartments analyzed         : 3" in summary_text
    assert "  Total policies                : 0" in summary_text


def test_run_connectivity_failure_aborts(tmp_path: Path, wired, capsys) -> None:
    def _fail(tenancy_id):
        try:
            raise RuntimeError("ServiceError: 401 NotAuthenticated")
        except RuntimeError as e:
            raise ConnectivityError("Unable to reach OCI identity service") from e

    wired.check_connectivity = _fail

    code = _main(["run", "--outdir", str(tmp_path), "--no-interactive"])

    assert code == int(ExitCode.OCI_ERROR)
    assert list(tmp_path.iterdir()) == []
    assert wired.child_calls == []
    out = capsys.readouterr().out
    assert "could not connect to OCI" in out
    assert "401 NotAuthenticated" in out


def test_validate_auth_prints_regions(wired, capsys) -> None:
    code = _main(["validate-auth", "--no-interactive"])

    assert code == 0
    assert "OK: authentication validated; subscribed regions: us-ashburn-1" in capsys.readouterr().out


def test_list_compartments_prints_only_the_tree_on_stdout(wired, capsys) -> None:
    code = _main(["list-compartments", "--no-interactive"])

    assert code == 0
    captured = capsys.readouterr()
    assert captured.out.splitlines() == ["Root (root)", "    Apps (a)", "    Network (b)"]
    assert "Tenancy OCID" in captured.err
    assert "Connectivity verified" in captured.err


def test_missing_tenancy_is_config_error(tmp_path: Path, monkeypatch) -> None:
    ctx = AuthContext(method="instance", config_dict=None, signer=object(), profile=None, tenancy_ocid=None)
    monkeypatch.setattr(cli, "_resolve_auth", lambda cfg, profile=None: ctx)

    code = _main(["run", "--outdir", str(tmp_path), "--no-interactive"])

    assert code == int(ExitCode.CONFIG_ERROR)
