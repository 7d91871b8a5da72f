import pytest

from pipeline_coordinator.errors import ProcessCancelledError
from pipeline_coordinator.overrides.inspector import PackageDependencyInspector


def test_matching_identities_case_insensitive_in_declared_order(fake_dotnet, dotnet, tmp_path):
    project = fake_dotnet.project(tmp_path / "Api.csproj", packages=["serilog", "CONTRACTS", "Auth"])
    inspector = PackageDependencyInspector(dotnet)

    assert inspector.matching_identities(project, ["Auth", "Contracts", "Billing"]) == [
        "Auth",
        "Contracts",
    ]
    assert inspector.has_package_reference(project, "contracts")
    assert not inspector.has_package_reference(project, "Billing")


def test_query_exception_reads_as_no_reference(fake_runner, dotnet, tmp_path):
    fake_runner.respond("dotnet", "list", error=RuntimeError("tool crashed"))
    inspector = PackageDependencyInspector(dotnet)

    assert inspector.has_package_reference(tmp_path / "Api.csproj", "Contracts") is False
    assert inspector.matching_identities(tmp_path / "Api.csproj", ["Contracts"]) == []


def test_malformed_output_reads_as_no_reference(fake_runner, dotnet, tmp_path):
    fake_runner.respond("dotnet", "list", stdout="{ this is not json")
    inspector = PackageDependencyInspector(dotnet)
    assert inspector.has_package_reference(tmp_path / "Api.csproj", "Contracts") is False


def test_missing_project_reads_as_no_reference(fake_dotnet, dotnet, tmp_path):
    inspector = PackageDependencyInspector(dotnet)
    assert inspector.resolved_packages(tmp_path / "Missing.csproj") == set()


def test_cancellation_is_not_swallowed(fake_runner, dotnet, tmp_path):
    fake_runner.respond("dotnet", "list", error=ProcessCancelledError("cancelled"))
    inspector = PackageDependencyInspector(dotnet)
    with pytest.raises(ProcessCancelledError):
        inspector.resolved_packages(tmp_path / "Api.csproj")
