import base64
import binascii
import json
import xml.etree.ElementTree as ET

# Table WAD writes to when a provider has no eventDestination
DEFAULT_ETW_DESTINATION = "ETWEventTable"
DEFAULT_IIS_CONTAINER = "wad-iis-logfiles"
WAD_TABLE_PREFIX = "WAD"

EVENT_SOURCE = "EventSource"
MANIFEST = "Manifest"

_PROVIDER_ELEMENTS = {
    "EtwEventSourceProviderConfiguration": EVENT_SOURCE,
    "EtwManifestProviderConfiguration": MANIFEST,
}


class DiagnosticsConfigError(ValueError):
    """Raised when a diagnostics extension payload cannot be decoded."""


def table_for_destination(destination):
    return f"{WAD_TABLE_PREFIX}{destination}"


def normalize_provider(provider, kind):
    provider = (provider or "").strip()
    if kind == MANIFEST:
        return provider.strip("{}").lower()
    return provider.lower()


def get_setting(mapping, key, default=None):
    # WAD accepts any casing for its JSON keys
    if not isinstance(mapping, dict):
        return default
    if key in mapping:
        return mapping[key]
    lowered = key.lower()
    for candidate, value in mapping.items():
        if isinstance(candidate, str) and candidate.lower() == lowered:
            return value
    return default


def _as_list(value):
    if value is None:
        return []
    if isinstance(value, list):
        return value
    return [value]


def decode_xml_cfg(value):
    """Decode the base64 ``xmlCfg`` value of a WAD extension into XML text."""
    if not value:
        raise DiagnosticsConfigError("xmlCfg is empty")
    try:
        raw = base64.b64decode("".join(value.split()), validate=True)
    except (binascii.Error, ValueError) as e:
        raise DiagnosticsConfigError(f"xmlCfg is not valid base64: {e}")
    try:
        return raw.decode("utf-8-sig")
    except UnicodeDecodeError:
        # Set-AzureVMDiagnosticsExtension writes UTF-16 when given a file from disk
        try:
            return raw.decode("utf-16")
        except UnicodeDecodeError as e:
            raise DiagnosticsConfigError(f"xmlCfg is not text: {e}")


def _make_route(kind, provider, destination, event_id=None):
    return {
        'ProviderKind': kind,
        'Provider': normalize_provider(provider, kind),
        'EventId': event_id,
        'Destination': destination,
        'Table': table_for_destination(destination),
    }


def _parse_event_id(value):
    try:
        return int(value)
    except (TypeError, ValueError):
        raise DiagnosticsConfigError(f"Invalid ETW event id: {value!r}")


def _routes_from_xml(root):
    routes = []
    for element in root.iter():
        kind = _PROVIDER_ELEMENTS.get(element.tag)
        if kind is None:
            continue
        provider = element.get("provider")
        if not provider:
            raise DiagnosticsConfigError(f"{element.tag} without provider attribute")
        provider_routes = []
        for child in element:
            destination = child.get("eventDestination")
            if child.tag == "DefaultEvents" and destination:
                provider_routes.append(_make_route(kind, provider, destination))
            elif child.tag == "Event" and destination:
                provider_routes.append(_make_route(kind, provider, destination, _parse_event_id(child.get("id"))))
        if not any(r['EventId'] is None for r in provider_routes):
            provider_routes.append(_make_route(kind, provider, DEFAULT_ETW_DESTINATION))
        routes.extend(provider_routes)
    return routes


def _routes_from_json(monitor_config):
    routes = []
    etw = get_setting(monitor_config, "EtwProviders") or {}
    for element, kind in _PROVIDER_ELEMENTS.items():
        for entry in _as_list(get_setting(etw, element)):
            provider = get_setting(entry, "provider")
            if not provider:
                raise DiagnosticsConfigError(f"{element} without provider")
            provider_routes = []
            default_events = get_setting(entry, "DefaultEvents") or {}
            destination = get_setting(default_events, "eventDestination")
            if destination:
                provider_routes.append(_make_route(kind, provider, destination))
            for event in _as_list(get_setting(entry, "Event")):
                destination = get_setting(event, "eventDestination")
                if destination:
                    provider_routes.append(_make_route(kind, provider, destination, _parse_event_id(get_setting(event, "id"))))
            if not any(r['EventId'] is None for r in provider_routes):
                provider_routes.append(_make_route(kind, provider, DEFAULT_ETW_DESTINATION))
            routes.extend(provider_routes)
    return routes


def _data_sources_from_xml(root):
    sources = {}
    for element in root.iter("WindowsEventLog"):
        names = [ds.get("name") for ds in element.iter("DataSource") if ds.get("name")]
        if names:
            sources['WindowsEventLog'] = names
    for element in root.iter("IISLogs"):
        sources['IISLogs'] = element.get("containerName") or DEFAULT_IIS_CONTAINER
    return sources


def _data_sources_from_json(monitor_config):
    sources = {}
    event_log = get_setting(monitor_config, "WindowsEventLog")
    if event_log:
        names = [get_setting(ds, "name") for ds in _as_list(get_setting(event_log, "DataSource")) if get_setting(ds, "name")]
        if names:
            sources['WindowsEventLog'] = names
    iis = get_setting(get_setting(monitor_config, "Directories") or {}, "IISLogs")
    if iis:
        sources['IISLogs'] = get_setting(iis, "containerName") or DEFAULT_IIS_CONTAINER
    return sources


def parse_xml_config(xml_text):
    try:
        root = ET.fromstring(xml_text)
    except ET.ParseError as e:
        raise DiagnosticsConfigError(f"xmlCfg is not valid XML: {e}")
    # WAD documents carry the DiagnosticsConfiguration namespace; match on local names
    for element in root.iter():
        if isinstance(element.tag, str) and '}' in element.tag:
            element.tag = element.tag.split('}', 1)[1]
    return _routes_from_xml(root), _data_sources_from_xml(root)


def parse_json_config(wad_cfg):
    if isinstance(wad_cfg, str):
        try:
            wad_cfg = json.loads(wad_cfg)
        except json.JSONDecodeError as e:
            raise DiagnosticsConfigError(f"WadCfg is not valid JSON: {e}")
    if not isinstance(wad_cfg, dict):
        raise DiagnosticsConfigError("WadCfg is not an object")
    monitor_config = get_setting(wad_cfg, "DiagnosticMonitorConfiguration") or {}
    return _routes_from_json(monitor_config), _data_sources_from_json(monitor_config)


def parse_settings(settings):
    """Read the public settings of an IaaSDiagnostics extension.

    Returns a dict with the storage account name the extension writes to,
    the payload format found (``xml``, ``json`` or ``None``), the ETW routes
    and the other data sources configured.
    """
    settings = settings or {}
    parsed = {
        'StorageAccount': get_setting(settings, "StorageAccount"),
        'Format': None,
        'Routes': [],
        'DataSources': {},
    }
    xml_cfg = get_setting(settings, "xmlCfg")
    wad_cfg = get_setting(settings, "WadCfg")
    if xml_cfg:
        parsed['Format'] = 'xml'
        parsed['Routes'], parsed['DataSources'] = parse_xml_config(decode_xml_cfg(xml_cfg))
    elif wad_cfg:
        parsed['Format'] = 'json'
        parsed['Routes'], parsed['DataSources'] = parse_json_config(wad_cfg)
    return parsed
