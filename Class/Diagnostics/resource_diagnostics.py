import sys
sys.path.append('.')
from Class.Diagnostics import wad_config
from Class.Diagnostics.etw_expectations import (
    DIAGNOSTIC_SETTINGS_CONTAINER_PREFIX, is_supported_container, is_supported_table)

WINDOWS_EVENT_LOG_TABLE = "WADWindowsEventLogsTable"
LINUX_SYSLOG_TABLE = "LinuxsyslogVer2v0"

WAD = "wad"
LAD = "lad"
SERVICE_FABRIC = "servicefabric"

_EXTENSION_KINDS = {
    ("microsoft.azure.diagnostics", "iaasdiagnostics"): WAD,
    ("microsoft.ostcextensions", "linuxdiagnostic"): LAD,
    ("microsoft.azure.diagnostics", "linuxdiagnostic"): LAD,
    ("microsoft.azure.servicefabric", "servicefabricnode"): SERVICE_FABRIC,
    ("microsoft.azure.servicefabric", "servicefabriclinuxnode"): SERVICE_FABRIC,
}


def extension_type(extension):
    # the SDK renamed the extension "type" property across api versions
    for attribute in ('type_properties_type', 'virtual_machine_extension_type'):
        value = getattr(extension, attribute, None)
        if value:
            return value
    return None


def extension_kind(extension):
    publisher = (getattr(extension, 'publisher', None) or "").lower()
    ext_type = (extension_type(extension) or "").lower()
    return _EXTENSION_KINDS.get((publisher, ext_type))


def _add(targets, storage_account_id, containers=(), tables=()):
    entry = targets.setdefault(storage_account_id, {'Containers': set(), 'Tables': set()})
    entry['Containers'].update(containers)
    entry['Tables'].update(tables)
    return targets


def _enabled_logs(settings):
    for setting in settings:
        storage_account_id = getattr(setting, 'storage_account_id', None)
        if not storage_account_id:
            continue
        for log in getattr(setting, 'logs', None) or []:
            if getattr(log, 'enabled', False):
                yield storage_account_id, log


def used_category_groups(settings):
    groups = set()
    for _, log in _enabled_logs(settings):
        group = getattr(log, 'category_group', None)
        if group and not getattr(log, 'category', None):
            groups.add(group.lower())
    return groups


def categories_by_group(categories):
    """Log category names of a resource keyed by lowercased category group (allLogs, audit)."""
    groups = {}
    for category in categories:
        category_type = getattr(category, 'category_type', None)
        if str(getattr(category_type, 'value', category_type) or "").lower() != "logs":
            continue
        for group in getattr(category, 'category_groups', None) or []:
            groups.setdefault(group.lower(), []).append(category.name)
    return groups


def targets_from_diagnostic_settings(settings, categories=()):
    """Storage targets of the diagnostic settings of a resource (NSG, key vault, ...).

    Logs enabled through a category group are expanded with ``categories``,
    the diagnostic settings categories of the resource.
    """
    groups = categories_by_group(categories)
    targets = {}
    for storage_account_id, log in _enabled_logs(settings):
        category = getattr(log, 'category', None)
        if category:
            names = [category]
        else:
            names = groups.get((getattr(log, 'category_group', None) or "").lower(), [])
        containers = [f"{DIAGNOSTIC_SETTINGS_CONTAINER_PREFIX}{name.lower()}" for name in names]
        if containers:
            _add(targets, storage_account_id, containers=containers)
    return targets


def targets_from_wad_settings(settings, storage_account_id):
    parsed = wad_config.parse_settings(settings)
    tables = [r['Table'] for r in parsed['Routes'] if is_supported_table(r['Table'])]
    containers = []
    if parsed['DataSources'].get('WindowsEventLog'):
        tables.append(WINDOWS_EVENT_LOG_TABLE)
    iis_container = parsed['DataSources'].get('IISLogs')
    if iis_container and is_supported_container(iis_container):
        containers.append(iis_container)
    if not tables and not containers:
        return {}
    return _add({}, storage_account_id, containers=containers, tables=tables)


def targets_from_lad_settings(settings, storage_account_id):
    # LAD 3.x collects syslog only for the facilities in ladCfg; LAD 2.3 unless EnableSyslog is false
    lad_cfg = wad_config.get_setting(settings or {}, "ladCfg")
    if lad_cfg is not None:
        monitor_cfg = wad_config.get_setting(lad_cfg, "diagnosticMonitorConfiguration") or {}
        collects_syslog = bool(wad_config.get_setting(monitor_cfg, "syslogEvents"))
    else:
        collects_syslog = str(wad_config.get_setting(settings or {}, "EnableSyslog", True)).lower() != "false"
    if not collects_syslog:
        return {}
    return _add({}, storage_account_id, tables=[LINUX_SYSLOG_TABLE])


def merge_targets(*target_maps):
    merged = {}
    keys = {}
    for targets in target_maps:
        for storage_account_id, entry in targets.items():
            key = keys.setdefault(storage_account_id.lower(), storage_account_id)
            _add(merged, key, entry['Containers'], entry['Tables'])
    return merged


def storage_account_name(settings):
    return wad_config.get_setting(settings or {}, "StorageAccount")
