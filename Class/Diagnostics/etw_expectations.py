from Class.Diagnostics.resource_ids import same_resource
from Class.Diagnostics.wad_config import EVENT_SOURCE, MANIFEST, normalize_provider, table_for_destination

WARNING = "Warning"
INFO = "Info"

# Provider -> destination the Service Fabric templates configure
SERVICE_FABRIC_ETW_ROUTES = [
    {'ProviderKind': EVENT_SOURCE, 'Provider': "Microsoft-ServiceFabric-Actors",
     'Destination': "ServiceFabricReliableActorEventTable"},
    {'ProviderKind': EVENT_SOURCE, 'Provider': "Microsoft-ServiceFabric-Services",
     'Destination': "ServiceFabricReliableServiceEventTable"},
    {'ProviderKind': MANIFEST, 'Provider': "cbd93bc2-71e5-4566-b3a7-595d8eeca6e8",
     'Destination': "ServiceFabricSystemEventTable"},
]

SERVICE_FABRIC_TABLES = [table_for_destination(r['Destination']) for r in SERVICE_FABRIC_ETW_ROUTES]

# Tables and containers a workspace storage insight can read
SUPPORTED_TABLES = [
    "WADWindowsEventLogsTable",
    "WADETWEventTable",
    "LinuxsyslogVer2v0",
] + SERVICE_FABRIC_TABLES
SUPPORTED_CONTAINERS = ["wad-iis-logfiles"]
DIAGNOSTIC_SETTINGS_CONTAINER_PREFIX = "insights-logs-"


def is_supported_table(table):
    return table.lower() in [t.lower() for t in SUPPORTED_TABLES]


def is_supported_container(container):
    container = container.lower()
    return container in SUPPORTED_CONTAINERS or container.startswith(DIAGNOSTIC_SETTINGS_CONTAINER_PREFIX)


def make_finding(level, check, message, provider="", expected="", observed=""):
    return {
        'Level': level,
        'Check': check,
        'Provider': provider,
        'Expected': expected,
        'Observed': observed,
        'Message': message,
    }


def check_etw_routes(routes, expected_routes=SERVICE_FABRIC_ETW_ROUTES):
    findings = []
    for expected in expected_routes:
        kind = expected['ProviderKind']
        provider = normalize_provider(expected['Provider'], kind)
        expected_table = table_for_destination(expected['Destination'])
        provider_routes = [r for r in routes if r['ProviderKind'] == kind and r['Provider'] == provider]
        default_routes = [r for r in provider_routes if r['EventId'] is None]

        if not provider_routes:
            findings.append(make_finding(
                WARNING, "ProviderMissing",
                f"{kind} provider {expected['Provider']} is not configured; its events are not collected",
                expected['Provider'], expected_table, ""))
            continue

        observed_tables = sorted({r['Table'] for r in default_routes})
        if [t.lower() for t in observed_tables] == [expected_table.lower()]:
            findings.append(make_finding(
                INFO, "ProviderConfigured",
                f"{kind} provider {expected['Provider']} writes to {expected_table}",
                expected['Provider'], expected_table, expected_table))
        else:
            findings.append(make_finding(
                WARNING, "WrongDestination",
                f"{kind} provider {expected['Provider']} writes to {', '.join(observed_tables)} instead of {expected_table}",
                expected['Provider'], expected_table, ", ".join(observed_tables)))

        for route in provider_routes:
            if route['EventId'] is not None and route['Table'].lower() != expected_table.lower():
                findings.append(make_finding(
                    INFO, "EventRedirected",
                    f"Event {route['EventId']} of {expected['Provider']} is written to {route['Table']}",
                    expected['Provider'], expected_table, route['Table']))

    for table in sorted({r['Table'] for r in routes}):
        if not is_supported_table(table):
            providers = sorted({r['Provider'] for r in routes if r['Table'] == table})
            findings.append(make_finding(
                INFO, "UnsupportedTable",
                f"Table {table} cannot be ingested by Log Analytics",
                ", ".join(providers), "", table))
    return findings


def check_storage_tables(expected_tables, existing_tables, storage_account=""):
    findings = []
    existing = [t.lower() for t in existing_tables]
    for table in expected_tables:
        if table.lower() in existing:
            findings.append(make_finding(
                INFO, "TablePresent",
                f"Table {table} exists in storage account {storage_account}",
                expected=table, observed=table))
        else:
            findings.append(make_finding(
                WARNING, "TableMissing",
                f"Table {table} does not exist in storage account {storage_account}; no events have been written yet",
                expected=table))
    return findings


def _insight_properties(insight):
    return insight.get('properties') or {}


def check_workspace_ingestion(storage_account_id, expected_tables, insights, workspace_name=""):
    """Compare the workspace storage insights against the tables it should read.

    ``insights`` are the raw storage insight documents of the workspace.
    """
    matching = [i for i in insights
                if same_resource((_insight_properties(i).get('storageAccount') or {}).get('id'), storage_account_id)]
    if not matching:
        return [make_finding(
            WARNING, "StorageInsightMissing",
            f"Workspace {workspace_name} has no storage insight for {storage_account_id}",
            expected=", ".join(expected_tables))]

    findings = []
    insight = matching[0]
    properties = _insight_properties(insight)
    configured = [t.lower() for t in properties.get('tables') or []]
    missing = [t for t in expected_tables if t.lower() not in configured]
    for table in missing:
        findings.append(make_finding(
            WARNING, "IngestionTableMissing",
            f"Storage insight {insight.get('name')} does not read table {table}",
            expected=table, observed=", ".join(properties.get('tables') or [])))

    status = properties.get('status') or {}
    state = status.get('state')
    if state and state.upper() != "OK":
        findings.append(make_finding(
            WARNING, "StorageInsightUnhealthy",
            f"Storage insight {insight.get('name')} is in state {state}: {status.get('description', '')}",
            expected="OK", observed=state))

    if not findings:
        findings.append(make_finding(
            INFO, "IngestionConfigured",
            f"Workspace {workspace_name} reads {', '.join(expected_tables)} through storage insight {insight.get('name')}",
            expected=", ".join(expected_tables), observed=", ".join(properties.get('tables') or [])))
    return findings


def summarize(findings):
    summary = {WARNING: 0, INFO: 0}
    for finding in findings:
        summary[finding['Level']] = summary.get(finding['Level'], 0) + 1
    return summary
