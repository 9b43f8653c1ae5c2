import argparse
import logging
import sys
sys.path.append('.')
from azure.identity import DefaultAzureCredential
from azure.mgmt.resource import ResourceManagementClient
from azure.mgmt.compute import ComputeManagementClient
from azure.mgmt.monitor import MonitorManagementClient
from azure.mgmt.storage import StorageManagementClient
from azure.mgmt.loganalytics import LogAnalyticsManagementClient
from azure.core.exceptions import HttpResponseError, ResourceNotFoundError
from Class.Diagnostics import resource_diagnostics
from Class.Diagnostics.etw_expectations import INFO, WARNING, make_finding, summarize
from Class.Diagnostics.resource_ids import parse_resource_id, resource_type
from Class.Diagnostics.storage_insights import (
    StorageInsightClient, StorageInsightError, find_for_account, insight_name, plan_update)
from Class.Diagnostics.wad_config import DiagnosticsConfigError
from Class.Diagnostics.workspaces import WorkspaceNotFoundError, confirm, find_workspace
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

REPORT_NAME = 'storage-insight-configuration'
NSG_TYPE = "Microsoft.Network/networkSecurityGroups"
VM_TYPE = "Microsoft.Compute/virtualMachines"
SCALE_SET_TYPE = "Microsoft.Compute/virtualMachineScaleSets"
DEFAULT_RESOURCE_TYPES = [NSG_TYPE, VM_TYPE]


def select_resources(resource_client, resource_ids=None, resource_group=None, resource_types=None):
    """Return (resource id, resource type) pairs to configure."""
    if resource_ids:
        selected = []
        for rid in resource_ids:
            type_name = resource_type(rid)
            if type_name is None:
                raise ValueError(f"{rid} is not the id of a resource")
            selected.append((rid, type_name))
        return selected
    wanted = [t.lower() for t in (resource_types or DEFAULT_RESOURCE_TYPES)]
    if resource_group:
        resources = resource_client.resources.list_by_resource_group(resource_group)
        return [(r.id, r.type) for r in resources if r.type.lower() in wanted]
    selected = []
    for wanted_type in resource_types or DEFAULT_RESOURCE_TYPES:
        for r in resource_client.resources.list(filter=f"resourceType eq '{wanted_type}'"):
            selected.append((r.id, r.type))
    return selected


class StorageAccountLookup:
    """Storage account ids by name, listed once per run."""

    def __init__(self, storage_client):
        self.storage_client = storage_client
        self._accounts = None

    def id_for(self, account_name):
        if self._accounts is None:
            self._accounts = {a.name.lower(): a.id for a in self.storage_client.storage_accounts.list()}
        return self._accounts.get(account_name.lower())


def targets_from_extensions(extensions, accounts, resource_name):
    """Storage targets of the WAD and LAD extensions of a VM or scale set, with findings for the ones skipped."""
    targets = {}
    findings = []
    for extension in extensions:
        kind = resource_diagnostics.extension_kind(extension)
        if kind not in (resource_diagnostics.WAD, resource_diagnostics.LAD):
            continue
        account_name = resource_diagnostics.storage_account_name(extension.settings)
        if not account_name:
            findings.append(make_finding(WARNING, "StorageAccountMissing",
                                         f"{resource_name}: diagnostics extension {extension.name} names no storage account"))
            continue
        storage_account_id = accounts.id_for(account_name)
        if storage_account_id is None:
            findings.append(make_finding(WARNING, "StorageAccountNotFound",
                                         f"{resource_name}: storage account {account_name} is not in this subscription",
                                         observed=account_name))
            continue
        if kind == resource_diagnostics.WAD:
            found = resource_diagnostics.targets_from_wad_settings(extension.settings, storage_account_id)
        else:
            found = resource_diagnostics.targets_from_lad_settings(extension.settings, storage_account_id)
        targets = resource_diagnostics.merge_targets(targets, found)
    return targets, findings


def targets_from_monitor_settings(resource_id, monitor_client):
    settings = monitor_client.diagnostic_settings.list(resource_id)
    settings = list(getattr(settings, 'value', settings) or [])
    groups = resource_diagnostics.used_category_groups(settings)
    if not groups:
        return resource_diagnostics.targets_from_diagnostic_settings(settings), []

    categories = monitor_client.diagnostic_settings_category.list(resource_id)
    categories = list(getattr(categories, 'value', categories) or [])
    known = resource_diagnostics.categories_by_group(categories)
    findings = [make_finding(WARNING, "CategoryGroupUnresolved",
                             f"Category group {group} of {resource_id} has no log categories to register",
                             observed=group)
                for group in sorted(groups - set(known))]
    return resource_diagnostics.targets_from_diagnostic_settings(settings, categories), findings


def storage_targets_for_resource(resource_id, type_name, monitor_client, compute_client, accounts):
    """Return (targets, findings) for one resource."""
    parsed = parse_resource_id(resource_id)
    if type_name.lower() == VM_TYPE.lower():
        extensions = compute_client.virtual_machine_extensions.list(parsed['resource_group'], parsed['name'])
        extensions = getattr(extensions, 'value', extensions) or []
        return targets_from_extensions(extensions, accounts, parsed['name'])
    if type_name.lower() == SCALE_SET_TYPE.lower():
        vmss = compute_client.virtual_machine_scale_sets.get(parsed['resource_group'], parsed['name'])
        profile = getattr(vmss.virtual_machine_profile, 'extension_profile', None)
        return targets_from_extensions(getattr(profile, 'extensions', None) or [], accounts, parsed['name'])
    # NSGs and everything else expose their logs through diagnostic settings
    return targets_from_monitor_settings(resource_id, monitor_client)


def collect_targets(resources, monitor_client, compute_client, accounts):
    all_targets = {}
    rows = []
    for resource_id, type_name in resources:
        try:
            targets, findings = storage_targets_for_resource(
                resource_id, type_name, monitor_client, compute_client, accounts)
        except DiagnosticsConfigError as e:
            targets = {}
            findings = [make_finding(WARNING, "DiagnosticsConfigUnreadable",
                                     f"Diagnostics configuration of {resource_id} cannot be read: {e}")]
        except (HttpResponseError, ResourceNotFoundError) as e:
            logger.error(f"Error reading diagnostics of {resource_id}: {e}")
            continue
        if not targets and not findings:
            findings = [make_finding(WARNING, "NoStorageDiagnostics",
                                     f"{resource_id} does not send diagnostics to a storage account")]
        findings_report.log_findings(logger, findings)
        rows.extend(findings_report.finding_rows(resource_id, type_name, findings))
        for storage_account_id, entry in targets.items():
            logger.debug(f"{resource_id} -> {storage_account_id}: {sorted(entry['Containers'])} {sorted(entry['Tables'])}")
        all_targets = resource_diagnostics.merge_targets(all_targets, targets)
    return all_targets, rows


def get_storage_key(credential, storage_client, storage_account_id, subscription_id):
    parsed = parse_resource_id(storage_account_id)
    if parsed['subscription'].lower() != subscription_id.lower():
        storage_client = StorageManagementClient(credential, parsed['subscription'])
    keys = storage_client.storage_accounts.list_keys(parsed['resource_group'], parsed['name'])
    return keys.keys[0].value


def configure_storage_insights(targets, insights, workspace, insight_client, key_source,
                               assume_yes=False, what_if=False, prompt=input):
    """Bring the workspace storage insights up to date with ``targets``.

    ``key_source`` returns the access key of a storage account id.
    """
    rows = []
    for storage_account_id, entry in sorted(targets.items()):
        existing = find_for_account(insights, storage_account_id)
        plan = plan_update(existing, entry['Containers'], entry['Tables'])
        name = existing['name'] if existing else insight_name(storage_account_id)
        observed = ", ".join(plan['Containers'] + plan['Tables'])

        if not plan['Changed']:
            finding = make_finding(INFO, "AlreadyConfigured",
                                   f"Storage insight {name} already reads {observed}", observed=observed)
        elif what_if:
            added = ", ".join(plan['AddedContainers'] + plan['AddedTables'])
            finding = make_finding(INFO, "PlannedUpdate",
                                   f"What if: storage insight {name} would add {added}", expected=added)
        elif not assume_yes and not confirm(
                f"Register {', '.join(plan['AddedContainers'] + plan['AddedTables'])} of {storage_account_id} with workspace {workspace.name}?",
                prompt):
            finding = make_finding(INFO, "Skipped", f"Storage insight {name} left unchanged by operator")
        else:
            try:
                # the listing may be stale after an operator prompt
                current = insight_client.get(workspace.id, name) if existing else None
                insight_client.put(workspace.id, name, storage_account_id, key_source(storage_account_id),
                                   plan['Containers'], plan['Tables'],
                                   (current or existing or {}).get('eTag'))
                finding = make_finding(INFO, "StorageInsightUpdated",
                                       f"Storage insight {name} now reads {observed}", observed=observed)
            except (StorageInsightError, HttpResponseError) as e:
                logger.error(f"Storage insight {name} update failed: {e}")
                finding = make_finding(WARNING, "StorageInsightUpdateFailed",
                                       f"Storage insight {name} could not be written: {e}")
        findings_report.log_findings(logger, [finding])
        rows.extend(findings_report.finding_rows(storage_account_id, "Microsoft.Storage/storageAccounts", [finding]))
    return rows


def parse_args(argv=None):
    parser = argparse.ArgumentParser(
        description="Register the storage accounts written by resource diagnostics with a Log Analytics workspace")
    parser.add_argument("--subscription", default=Config.subscription_id,
                        help="Subscription id or name (default: AZURE_SUBSCRIPTION_ID)")
    parser.add_argument("--workspace-name", help="Log Analytics workspace name (prompted when omitted)")
    parser.add_argument("--workspace-resource-group", help="Resource group of the workspace")
    parser.add_argument("--resource-id", action="append", dest="resource_ids", help="Resource to configure (repeatable)")
    parser.add_argument("--resource-group", help="Configure the resources of this resource group")
    parser.add_argument("--resource-type", action="append", dest="resource_types",
                        help="Resource type to configure (repeatable, default: NSGs and VMs)")
    parser.add_argument("--yes", action="store_true", help="Do not ask before writing a storage insight")
    parser.add_argument("--what-if", action="store_true", help="Show the changes without writing them")
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
        monitor_client = MonitorManagementClient(credential, subscription_id)
        storage_client = StorageManagementClient(credential, subscription_id)
        loganalytics_client = LogAnalyticsManagementClient(credential, subscription_id)

        workspace = find_workspace(loganalytics_client, args.workspace_name, args.workspace_resource_group)
        insight_client = StorageInsightClient(credential)
        insights = insight_client.list(workspace.id)

        resources = select_resources(resource_client, args.resource_ids, args.resource_group, args.resource_types)
        logger.info(f"{len(resources)} resources selected")
        targets, rows = collect_targets(resources, monitor_client, compute_client, StorageAccountLookup(storage_client))

        rows.extend(configure_storage_insights(
            targets, insights, workspace, insight_client,
            lambda account_id: get_storage_key(credential, storage_client, account_id, subscription_id),
            assume_yes=args.yes, what_if=args.what_if))

        findings_report.publish_report(rows, REPORT_NAME, args.report, args.upload)
        summary = summarize(rows)
        logger.info(f"Configuration finished: {summary[WARNING]} warnings, {summary.get(INFO, 0)} informational")
        return 1 if summary[WARNING] else 0
    except (SubscriptionNotFoundError, WorkspaceNotFoundError, StorageInsightError, ValueError, HttpResponseError) as e:
        logger.error(f"Configuration aborted: {e}")
        return 2
    finally:
        findings_report.detach_run_log(csv_error_handler)
        findings_report.publish_logs(csv_error_handler, REPORT_NAME, args.upload)


if __name__ == "__main__":
    sys.exit(main())
