import argparse
import logging
import sys
sys.path.append('.')
from azure.identity import DefaultAzureCredential
from azure.mgmt.resource import ResourceManagementClient
from azure.mgmt.compute import ComputeManagementClient
from azure.mgmt.storage import StorageManagementClient
from azure.mgmt.loganalytics import LogAnalyticsManagementClient
from azure.core.exceptions import HttpResponseError, ResourceNotFoundError
from Class.Diagnostics import wad_config
from Class.Diagnostics.etw_expectations import (
    SERVICE_FABRIC_TABLES, INFO, WARNING, check_etw_routes, check_storage_tables,
    check_workspace_ingestion, make_finding, summarize)
from Class.Diagnostics.resource_diagnostics import SERVICE_FABRIC, WAD, extension_kind
from Class.Diagnostics.storage_insights import StorageInsightClient, StorageInsightError
from Class.Diagnostics.workspaces import WorkspaceNotFoundError, find_workspace
from Class.Logging.console_logging import configure_console_logging
from Class.Logging.csv_error_handler import CSVErrorHandler
from Class.Logging.subscriptions_validations import SubscriptionNotFoundError, resolve_subscription
from Class.Report_handler.config_param import Config
from Class.Report_handler import findings_report

# Instantiate the handler
csv_error_handler = CSVErrorHandler()
logger = logging.getLogger(__name__)
logger.setLevel(logging.DEBUG)
logger.addHandler(csv_error_handler)

REPORT_NAME = 'service-fabric-etw-audit'
CLUSTER_TYPE = "Microsoft.ServiceFabric/clusters"
SCALE_SET_TYPE = "Microsoft.Compute/virtualMachineScaleSets"


class ClusterNotFoundError(LookupError):
    pass


def scale_set_extensions(vmss):
    profile = getattr(vmss, 'virtual_machine_profile', None)
    extension_profile = getattr(profile, 'extension_profile', None)
    return list(getattr(extension_profile, 'extensions', None) or [])


def find_extension(extensions, kind):
    for extension in extensions:
        if extension_kind(extension) == kind:
            return extension
    return None


def get_cluster_endpoint(resource_client, cluster_resource):
    cluster = resource_client.resources.get_by_id(cluster_resource.id, Config.service_fabric_api_version)
    return (cluster.properties or {}).get('clusterEndpoint')


def is_cluster_node_type(vmss, cluster_endpoint=None):
    extension = find_extension(scale_set_extensions(vmss), SERVICE_FABRIC)
    if extension is None:
        return False
    if cluster_endpoint is None:
        return True
    endpoint = wad_config.get_setting(extension.settings or {}, "clusterEndpoint") or ""
    return endpoint.rstrip('/').lower() == cluster_endpoint.rstrip('/').lower()


def find_storage_account(storage_client, account_name):
    for account in storage_client.storage_accounts.list():
        if account.name.lower() == account_name.lower():
            return account
    return None


def list_storage_tables(storage_client, account):
    resource_group = account.id.split('/')[4]
    return [table.name for table in storage_client.table.list(resource_group, account.name)]


def audit_node_type(vmss, storage_client, insights, workspace_name):
    """Check one node type: WAD ETW routes, the storage tables they feed, and workspace ingestion."""
    extension = find_extension(scale_set_extensions(vmss), WAD)
    if extension is None:
        return [make_finding(WARNING, "DiagnosticsExtensionMissing",
                             f"Node type {vmss.name} has no IaaSDiagnostics extension; ETW events are not collected")]

    try:
        parsed = wad_config.parse_settings(extension.settings)
    except wad_config.DiagnosticsConfigError as e:
        return [make_finding(WARNING, "DiagnosticsConfigUnreadable",
                             f"Diagnostics configuration of {vmss.name} cannot be read: {e}")]
    if parsed['Format'] is None:
        return [make_finding(WARNING, "DiagnosticsConfigUnreadable",
                             f"Diagnostics extension of {vmss.name} has neither xmlCfg nor WadCfg")]
    logger.debug(f"{vmss.name}: {parsed['Format']} diagnostics configuration with {len(parsed['Routes'])} ETW routes")

    findings = check_etw_routes(parsed['Routes'])

    account_name = parsed['StorageAccount']
    if not account_name:
        findings.append(make_finding(WARNING, "StorageAccountMissing",
                                     f"Diagnostics extension of {vmss.name} names no storage account"))
        return findings
    account = find_storage_account(storage_client, account_name)
    if account is None:
        findings.append(make_finding(WARNING, "StorageAccountNotFound",
                                     f"Storage account {account_name} of {vmss.name} is not in this subscription",
                                     observed=account_name))
        return findings

    findings.extend(check_storage_tables(SERVICE_FABRIC_TABLES, list_storage_tables(storage_client, account), account.name))
    findings.extend(check_workspace_ingestion(account.id, SERVICE_FABRIC_TABLES, insights, workspace_name))
    return findings


def audit_cluster(resource_client, compute_client, storage_client, insights, workspace_name,
                  cluster_resource_group, cluster_name=None):
    rows = []
    resources = list(resource_client.resources.list_by_resource_group(cluster_resource_group))

    cluster_endpoint = None
    clusters = [r for r in resources if r.type.lower() == CLUSTER_TYPE.lower()]
    if cluster_name:
        matching = [c for c in clusters if c.name.lower() == cluster_name.lower()]
        if not matching:
            raise ClusterNotFoundError(f"Service Fabric cluster {cluster_name} not found in {cluster_resource_group}")
        cluster_endpoint = get_cluster_endpoint(resource_client, matching[0])
        logger.info(f"Cluster {cluster_name} endpoint {cluster_endpoint}")

    node_types = 0
    for resource in resources:
        if resource.type.lower() == CLUSTER_TYPE.lower():
            continue
        if resource.type.lower() != SCALE_SET_TYPE.lower():
            logger.debug(f"Skipping {resource.type} {resource.name}")
            continue
        try:
            vmss = compute_client.virtual_machine_scale_sets.get(cluster_resource_group, resource.name)
            if not is_cluster_node_type(vmss, cluster_endpoint):
                logger.debug(f"Scale set {vmss.name} is not a node type of the cluster")
                continue
            node_types += 1
            logger.info(f"Auditing node type {vmss.name}")
            findings = audit_node_type(vmss, storage_client, insights, workspace_name)
        except (HttpResponseError, ResourceNotFoundError) as e:
            logger.error(f"Error processing scale set {resource.name}: {e}")
            continue
        findings_report.log_findings(logger, findings, f"{resource.name}: ")
        rows.extend(findings_report.finding_rows(resource.id, resource.type, findings))

    if node_types == 0:
        finding = make_finding(WARNING, "NoNodeTypes",
                               f"No Service Fabric node type found in resource group {cluster_resource_group}")
        findings_report.log_findings(logger, [finding])
        rows.extend(findings_report.finding_rows("", "", [finding]))
    return rows


def parse_args(argv=None):
    parser = argparse.ArgumentParser(
        description="Check that Service Fabric ETW events reach the expected tables and a Log Analytics workspace")
    parser.add_argument("--subscription", default=Config.subscription_id,
                        help="Subscription id or name (default: AZURE_SUBSCRIPTION_ID)")
    parser.add_argument("--cluster-resource-group", required=True, help="Resource group of the cluster node types")
    parser.add_argument("--cluster-name", help="Only audit node types of this cluster")
    parser.add_argument("--workspace-name", required=True, help="Log Analytics workspace name")
    parser.add_argument("--workspace-resource-group", help="Resource group of the workspace")
    parser.add_argument("--report", help="Write the findings to this Excel file")
    parser.add_argument("--upload", action="store_true", help="Store the report in the reporting storage account")
    parser.add_argument("--verbose", action="store_true")
    return parser.parse_args(argv)


def main(argv=None, credential=None):
    args = parse_args(argv)
    configure_console_logging(args.verbose)
    csv_error_handler.clear()
    findings_report.attach_run_log(csv_error_handler)
    try:
        credential = credential or DefaultAzureCredential()
        subscription = resolve_subscription(credential, args.subscription)
        subscription_id = subscription.subscription_id
        logger.info(f"Subscription {subscription.display_name} ({subscription_id})")

        resource_client = ResourceManagementClient(credential, subscription_id)
        compute_client = ComputeManagementClient(credential, subscription_id)
        storage_client = StorageManagementClient(credential, subscription_id)
        loganalytics_client = LogAnalyticsManagementClient(credential, subscription_id)

        workspace = find_workspace(loganalytics_client, args.workspace_name, args.workspace_resource_group)
        insights = StorageInsightClient(credential).list(workspace.id)

        rows = audit_cluster(resource_client, compute_client, storage_client, insights, workspace.name,
                             args.cluster_resource_group, args.cluster_name)

        findings_report.publish_report(rows, REPORT_NAME, args.report, args.upload)
        summary = summarize(rows)
        logger.info(f"Audit finished: {summary[WARNING]} warnings, {summary.get(INFO, 0)} checks passed")
        return 1 if summary[WARNING] else 0
    except (SubscriptionNotFoundError, WorkspaceNotFoundError, StorageInsightError, ClusterNotFoundError, HttpResponseError) as e:
        logger.error(f"Audit aborted: {e}")
        return 2
    finally:
        findings_report.detach_run_log(csv_error_handler)
        findings_report.publish_logs(csv_error_handler, REPORT_NAME, args.upload)


if __name__ == "__main__":
    sys.exit(main())
