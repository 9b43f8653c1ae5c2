from types import SimpleNamespace

import pandas as pd
import pytest
import requests

from Class.Diagnostics import storage_insights
from Main_functions.Audit import service_fabric_etw_audit as audit
from conftest import (
    CLUSTER_RG, SF_TABLES, STORAGE_ID, SUBSCRIPTION, FakeInsightClient, FakeResources, FakeScaleSets,
    FakeStorageAccounts, FakeTables, generic_resource, insight, resource_id, scale_set,
    service_fabric_extension, storage_account, wad_extension)

CLUSTER_ID = resource_id(CLUSTER_RG, "Microsoft.ServiceFabric/clusters", "sfcluster")


def clients(node_types, tables=None, endpoint=None):
    resources = [generic_resource(CLUSTER_ID, "Microsoft.ServiceFabric/clusters"),
                 generic_resource(STORAGE_ID, "Microsoft.Storage/storageAccounts")]
    resources += [generic_resource(vmss.id, "Microsoft.Compute/virtualMachineScaleSets") for vmss in node_types]
    properties = {CLUSTER_ID: {"clusterEndpoint": endpoint}} if endpoint else {}
    resource_client = SimpleNamespace(resources=FakeResources(resources, properties))
    compute_client = SimpleNamespace(virtual_machine_scale_sets=FakeScaleSets(node_types))
    storage_client = SimpleNamespace(storage_accounts=FakeStorageAccounts([storage_account("sfdglogs01")]),
                                     table=FakeTables({"sfdglogs01": SF_TABLES if tables is None else tables}))
    return resource_client, compute_client, storage_client


def checks(rows, level=None):
    return [r['Check'] for r in rows if level is None or r['Level'] == level]


def test_correctly_wired_cluster(wad_json_settings) -> None:
    node_type = scale_set("nt1vm", [service_fabric_extension(), wad_extension(wad_json_settings)])
    jumpbox = scale_set("jumpbox", [wad_extension(wad_json_settings)])
    resource_client, compute_client, storage_client = clients(
        [node_type, jumpbox], endpoint="https://westeurope.servicefabric.azure.com/runtime/clusters/11111111-2222-3333-4444-555555555555/")
    rows = audit.audit_cluster(resource_client, compute_client, storage_client, [insight(STORAGE_ID, SF_TABLES)],
                               "ops-workspace", CLUSTER_RG, "sfcluster")
    assert checks(rows, "Warning") == []
    assert checks(rows) == ["ProviderConfigured"] * 3 + ["TablePresent"] * 3 + ["IngestionConfigured"]
    assert {r['ResourceName'] for r in rows} == {"nt1vm"}


def test_misconfigured_cluster(wad_xml_settings) -> None:
    node_type = scale_set("nt1vm", [service_fabric_extension(), wad_extension(wad_xml_settings)])
    resource_client, compute_client, storage_client = clients([node_type], tables=["WADServiceFabricSystemEventTable"])
    rows = audit.audit_cluster(resource_client, compute_client, storage_client, [], "ops-workspace", CLUSTER_RG)
    assert checks(rows, "Warning") == ["WrongDestination", "TableMissing", "TableMissing", "StorageInsightMissing"]


def test_node_type_without_diagnostics() -> None:
    node_type = scale_set("nt1vm", [service_fabric_extension()])
    resource_client, compute_client, storage_client = clients([node_type])
    rows = audit.audit_cluster(resource_client, compute_client, storage_client, [], "ops-workspace", CLUSTER_RG)
    assert checks(rows) == ["DiagnosticsExtensionMissing"]


def test_storage_account_outside_subscription(wad_json_settings) -> None:
    wad_json_settings["StorageAccount"] = "elsewhere"
    node_type = scale_set("nt1vm", [service_fabric_extension(), wad_extension(wad_json_settings)])
    resource_client, compute_client, storage_client = clients([node_type])
    rows = audit.audit_cluster(resource_client, compute_client, storage_client, [], "ops-workspace", CLUSTER_RG)
    assert checks(rows, "Warning") == ["StorageAccountNotFound"]


def test_unreadable_configuration() -> None:
    node_type = scale_set("nt1vm", [service_fabric_extension(), wad_extension({"xmlCfg": "%%%"})])
    resource_client, compute_client, storage_client = clients([node_type])
    rows = audit.audit_cluster(resource_client, compute_client, storage_client, [], "ops-workspace", CLUSTER_RG)
    assert checks(rows) == ["DiagnosticsConfigUnreadable"]


def test_other_cluster_node_types_are_skipped(wad_json_settings) -> None:
    node_type = scale_set("nt1vm", [service_fabric_extension("https://other/cluster"), wad_extension(wad_json_settings)])
    resource_client, compute_client, storage_client = clients([node_type], endpoint="https://mine/cluster")
    rows = audit.audit_cluster(resource_client, compute_client, storage_client, [], "ops-workspace", CLUSTER_RG, "sfcluster")
    assert checks(rows) == ["NoNodeTypes"]


def test_unknown_cluster() -> None:
    resource_client, compute_client, storage_client = clients([])
    with pytest.raises(LookupError):
        audit.audit_cluster(resource_client, compute_client, storage_client, [], "ops-workspace", CLUSTER_RG, "missing")


def test_main(monkeypatch, tmp_path, credential, workspace, wad_json_settings) -> None:
    node_type = scale_set("nt1vm", [service_fabric_extension(), wad_extension(wad_json_settings)])
    resource_client, compute_client, storage_client = clients([node_type])
    monkeypatch.setattr(audit, "resolve_subscription",
                        lambda cred, name: SimpleNamespace(subscription_id=SUBSCRIPTION, display_name=name))
    monkeypatch.setattr(audit, "ResourceManagementClient", lambda cred, sub: resource_client)
    monkeypatch.setattr(audit, "ComputeManagementClient", lambda cred, sub: compute_client)
    monkeypatch.setattr(audit, "StorageManagementClient", lambda cred, sub: storage_client)
    monkeypatch.setattr(audit, "LogAnalyticsManagementClient", lambda cred, sub: None)
    monkeypatch.setattr(audit, "find_workspace", lambda client, name, rg: workspace)
    monkeypatch.setattr(audit, "StorageInsightClient", lambda cred: FakeInsightClient([insight(STORAGE_ID, SF_TABLES)]))
    report = tmp_path / "audit.xlsx"

    code = audit.main(["--subscription", "prod", "--cluster-resource-group", CLUSTER_RG,
                       "--workspace-name", "ops-workspace", "--report", str(report)], credential=credential)

    assert code == 0
    assert pd.read_excel(report, engine="openpyxl")['Level'].unique().tolist() == ["Info"]


def test_main_with_warnings(monkeypatch, credential, workspace) -> None:
    resource_client, compute_client, storage_client = clients([scale_set("nt1vm", [service_fabric_extension()])])
    monkeypatch.setattr(audit, "resolve_subscription",
                        lambda cred, name: SimpleNamespace(subscription_id=SUBSCRIPTION, display_name=name))
    monkeypatch.setattr(audit, "ResourceManagementClient", lambda cred, sub: resource_client)
    monkeypatch.setattr(audit, "ComputeManagementClient", lambda cred, sub: compute_client)
    monkeypatch.setattr(audit, "StorageManagementClient", lambda cred, sub: storage_client)
    monkeypatch.setattr(audit, "LogAnalyticsManagementClient", lambda cred, sub: None)
    monkeypatch.setattr(audit, "find_workspace", lambda client, name, rg: workspace)
    monkeypatch.setattr(audit, "StorageInsightClient", lambda cred: FakeInsightClient())

    assert audit.main(["--subscription", "prod", "--cluster-resource-group", CLUSTER_RG,
                       "--workspace-name", "ops-workspace"], credential=credential) == 1


def test_main_unknown_workspace(monkeypatch, credential) -> None:
    def missing(*args):
        raise audit.WorkspaceNotFoundError("Workspace ops-workspace not found")

    monkeypatch.setattr(audit, "resolve_subscription",
                        lambda cred, name: SimpleNamespace(subscription_id=SUBSCRIPTION, display_name=name))
    monkeypatch.setattr(audit, "LogAnalyticsManagementClient", lambda cred, sub: None)
    monkeypatch.setattr(audit, "ResourceManagementClient", lambda cred, sub: None)
    monkeypatch.setattr(audit, "ComputeManagementClient", lambda cred, sub: None)
    monkeypatch.setattr(audit, "StorageManagementClient", lambda cred, sub: None)
    monkeypatch.setattr(audit, "find_workspace", missing)

    assert audit.main(["--subscription", "prod", "--cluster-resource-group", CLUSTER_RG,
                       "--workspace-name", "ops-workspace"], credential=credential) == 2


def test_main_storage_insights_unreachable(monkeypatch, credential, workspace) -> None:
    def timeout(url, **kwargs):
        raise requests.exceptions.ReadTimeout("read timed out")

    published = []
    resource_client, compute_client, storage_client = clients([scale_set("nt1vm", [service_fabric_extension()])])
    monkeypatch.setattr(audit, "resolve_subscription",
                        lambda cred, name: SimpleNamespace(subscription_id=SUBSCRIPTION, display_name=name))
    monkeypatch.setattr(audit, "ResourceManagementClient", lambda cred, sub: resource_client)
    monkeypatch.setattr(audit, "ComputeManagementClient", lambda cred, sub: compute_client)
    monkeypatch.setattr(audit, "StorageManagementClient", lambda cred, sub: storage_client)
    monkeypatch.setattr(audit, "LogAnalyticsManagementClient", lambda cred, sub: None)
    monkeypatch.setattr(audit, "find_workspace", lambda client, name, rg: workspace)
    monkeypatch.setattr(storage_insights, "requests", SimpleNamespace(get=timeout, put=timeout))
    monkeypatch.setattr(audit.findings_report, "publish_logs",
                        lambda handler, name, upload=False: published.extend(handler.get_error_logs()))

    assert audit.main(["--subscription", "prod", "--cluster-resource-group", CLUSTER_RG,
                       "--workspace-name", "ops-workspace"], credential=credential) == 2
    assert "read timed out" in published[-1]['Message']
