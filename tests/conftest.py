import base64
import json
import os
from types import SimpleNamespace
from typing import Any, Dict, List, Optional

from pytest import fixture

SUBSCRIPTION = "00000000-0000-0000-0000-000000000001"
CLUSTER_RG = "sf-cluster-rg"
WORKSPACE_ID = f"/subscriptions/{SUBSCRIPTION}/resourceGroups/monitoring-rg/providers/Microsoft.OperationalInsights/workspaces/ops-workspace"
STORAGE_ID = f"/subscriptions/{SUBSCRIPTION}/resourceGroups/{CLUSTER_RG}/providers/Microsoft.Storage/storageAccounts/sfdglogs01"
CLUSTER_ENDPOINT = "https://westeurope.servicefabric.azure.com/runtime/clusters/11111111-2222-3333-4444-555555555555"

SF_TABLES = [
    "WADServiceFabricReliableActorEventTable",
    "WADServiceFabricReliableServiceEventTable",
    "WADServiceFabricSystemEventTable",
]


def read_file(name: str) -> str:
    with open(os.path.join(os.path.dirname(__file__), "files", name)) as f:
        return f.read()


def resource_id(rg: str, provider_type: str, name: str) -> str:
    return f"/subscriptions/{SUBSCRIPTION}/resourceGroups/{rg}/providers/{provider_type}/{name}"


def extension(publisher: str, ext_type: str, settings: Optional[Dict[str, Any]], name: Optional[str] = None) -> Any:
    return SimpleNamespace(name=name or ext_type, publisher=publisher, type_properties_type=ext_type, settings=settings)


def wad_extension(settings: Optional[Dict[str, Any]]) -> Any:
    return extension("Microsoft.Azure.Diagnostics", "IaaSDiagnostics", settings, "VMDiagnosticsVmExt_vmNodeType0Name")


def service_fabric_extension(endpoint: str = CLUSTER_ENDPOINT) -> Any:
    return extension("Microsoft.Azure.ServiceFabric", "ServiceFabricNode",
                     {"clusterEndpoint": endpoint, "nodeTypeRef": "nt1vm"}, "nt1vm_ServiceFabricNode")


def scale_set(name: str, extensions: List[Any]) -> Any:
    return SimpleNamespace(
        name=name,
        id=resource_id(CLUSTER_RG, "Microsoft.Compute/virtualMachineScaleSets", name),
        virtual_machine_profile=SimpleNamespace(extension_profile=SimpleNamespace(extensions=extensions)),
    )


def generic_resource(rid: str, rtype: str) -> Any:
    return SimpleNamespace(id=rid, name=rid.split("/")[-1], type=rtype)


def insight(storage_account_id: str, tables: List[str], containers: Optional[List[str]] = None,
            state: str = "OK", description: str = "") -> Dict[str, Any]:
    name = storage_account_id.split("/")[-1]
    return {
        "id": f"{WORKSPACE_ID}/storageInsightConfigs/{name}",
        "name": name,
        "eTag": "W/\"etag-1\"",
        "properties": {
            "containers": containers or [],
            "tables": tables,
            "storageAccount": {"id": storage_account_id},
            "status": {"state": state, "description": description},
        },
    }


class FakeResources:
    def __init__(self, resources: List[Any], properties: Optional[Dict[str, Dict[str, Any]]] = None) -> None:
        self.resources = resources
        self.properties = properties or {}

    def list_by_resource_group(self, resource_group: str) -> List[Any]:
        return [r for r in self.resources if r.id.split("/")[4].lower() == resource_group.lower()]

    def list(self, filter: Optional[str] = None) -> List[Any]:
        if filter:
            wanted = filter.split("'")[1].lower()
            return [r for r in self.resources if r.type.lower() == wanted]
        return list(self.resources)

    def get_by_id(self, rid: str, api_version: str) -> Any:
        return SimpleNamespace(id=rid, properties=self.properties.get(rid, {}))


class FakeScaleSets:
    def __init__(self, scale_sets: List[Any]) -> None:
        self.scale_sets = {s.name: s for s in scale_sets}

    def get(self, resource_group: str, name: str) -> Any:
        return self.scale_sets[name]


class FakeVmExtensions:
    def __init__(self, extensions: Dict[str, List[Any]]) -> None:
        self.extensions = extensions

    def list(self, resource_group: str, vm_name: str) -> Any:
        return SimpleNamespace(value=self.extensions.get(vm_name, []))


class FakeStorageAccounts:
    def __init__(self, accounts: List[Any]) -> None:
        self.accounts = accounts
        self.key_requests: List[str] = []

    def list(self) -> List[Any]:
        return list(self.accounts)

    def list_keys(self, resource_group: str, name: str) -> Any:
        self.key_requests.append(name)
        return SimpleNamespace(keys=[SimpleNamespace(key_name="key1", value=f"{name}-key")])


class FakeTables:
    def __init__(self, tables: Dict[str, List[str]]) -> None:
        self.tables = tables

    def list(self, resource_group: str, account_name: str) -> List[Any]:
        return [SimpleNamespace(name=t) for t in self.tables.get(account_name, [])]


class FakeDiagnosticSettings:
    def __init__(self, settings: Dict[str, List[Any]]) -> None:
        self.settings = settings

    def list(self, resource_uri: str) -> List[Any]:
        return self.settings.get(resource_uri, [])


class FakeDiagnosticCategories:
    def __init__(self, categories: Dict[str, List[Any]]) -> None:
        self.categories = categories
        self.requests: List[str] = []

    def list(self, resource_uri: str) -> Any:
        self.requests.append(resource_uri)
        return SimpleNamespace(value=self.categories.get(resource_uri, []))


def log_category(name: str, groups: List[str], category_type: str = "Logs") -> Any:
    return SimpleNamespace(name=name, category_type=category_type, category_groups=groups)


class FakeInsightClient:
    def __init__(self, insights: Optional[List[Dict[str, Any]]] = None, fail: bool = False) -> None:
        self.insights = insights or []
        self.fail = fail
        self.puts: List[Dict[str, Any]] = []
        self.gets: List[str] = []

    def list(self, workspace_id: str) -> List[Dict[str, Any]]:
        return list(self.insights)

    def get(self, workspace_id: str, name: str) -> Optional[Dict[str, Any]]:
        self.gets.append(name)
        return next((i for i in self.insights if i['name'] == name), None)

    def put(self, workspace_id: str, name: str, storage_account_id: str, key: str, containers: List[str],
            tables: List[str], e_tag: Optional[str] = None) -> Dict[str, Any]:
        from Class.Diagnostics.storage_insights import StorageInsightError

        if self.fail:
            raise StorageInsightError("Failed to write storage insight", 400, "{}")
        call = dict(workspace_id=workspace_id, name=name, storage_account_id=storage_account_id, key=key,
                    containers=list(containers), tables=list(tables), e_tag=e_tag)
        self.puts.append(call)
        return call


class FakeCredential:
    def get_token(self, *scopes: str, **kwargs: Any) -> Any:
        return SimpleNamespace(token="token-for-" + ",".join(scopes), expires_on=0)


def storage_account(name: str, rg: str = CLUSTER_RG) -> Any:
    return SimpleNamespace(name=name, id=resource_id(rg, "Microsoft.Storage/storageAccounts", name))


@fixture
def wad_json_settings() -> Dict[str, Any]:
    return json.loads(read_file("wad_servicefabric.json"))


@fixture
def wad_xml_settings() -> Dict[str, Any]:
    xml_cfg = base64.b64encode(read_file("wad_partial.xml").encode("utf-8")).decode("ascii")
    return {"xmlCfg": xml_cfg, "StorageAccount": "sfdglogs01"}


@fixture
def workspace() -> Any:
    return SimpleNamespace(name="ops-workspace", id=WORKSPACE_ID, location="westeurope")


@fixture
def credential() -> FakeCredential:
    return FakeCredential()
