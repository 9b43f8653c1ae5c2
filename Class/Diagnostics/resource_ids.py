# Helpers for fully qualified ARM resource ids
# /subscriptions/{sub}/resourceGroups/{rg}/providers/{namespace}/{type}/{name}[/{child type}/{child name}]


def parse_resource_id(resource_id):
    if not resource_id or not isinstance(resource_id, str):
        raise ValueError(f"Not a resource id: {resource_id!r}")
    parts = [p for p in resource_id.strip().split('/') if p]
    lowered = [p.lower() for p in parts]
    if len(parts) < 2 or lowered[0] != 'subscriptions':
        raise ValueError(f"Not a resource id: {resource_id!r}")

    parsed = {
        'subscription': parts[1],
        'resource_group': None,
        'provider': None,
        'type': None,
        'name': None,
    }
    if 'resourcegroups' in lowered:
        index = lowered.index('resourcegroups')
        if index + 1 >= len(parts):
            raise ValueError(f"Resource group missing in {resource_id!r}")
        parsed['resource_group'] = parts[index + 1]
    if 'providers' in lowered:
        index = lowered.index('providers')
        rest = parts[index + 1:]
        # namespace followed by type/name pairs
        if len(rest) < 3 or len(rest) % 2 == 0:
            raise ValueError(f"Malformed provider section in {resource_id!r}")
        parsed['provider'] = rest[0]
        types = rest[1::2]
        parsed['type'] = '/'.join([rest[0]] + types)
        parsed['name'] = rest[-1]
    return parsed


def resource_type(resource_id):
    return parse_resource_id(resource_id)['type']


def resource_name(resource_id):
    return resource_id.rstrip('/').split('/')[-1]


def same_resource(first, second):
    if not first or not second:
        return False
    return first.rstrip('/').lower() == second.rstrip('/').lower()

