import logging

logger = logging.getLogger(__name__)


class WorkspaceNotFoundError(LookupError):
    pass


def list_workspaces(loganalytics_client, resource_group=None):
    if resource_group:
        return list(loganalytics_client.workspaces.list_by_resource_group(resource_group))
    return list(loganalytics_client.workspaces.list())


def choose_workspace(workspaces, prompt=input):
    """Ask the operator to pick one workspace from a numbered list."""
    if not workspaces:
        raise WorkspaceNotFoundError("No Log Analytics workspace available")
    if len(workspaces) == 1:
        return workspaces[0]
    for index, workspace in enumerate(workspaces, start=1):
        print(f"[{index}] {workspace.name} ({workspace.id.split('/')[4]}, {workspace.location})")
    answer = prompt(f"Select a workspace [1-{len(workspaces)}]: ").strip()
    try:
        selected = int(answer)
    except ValueError:
        raise WorkspaceNotFoundError(f"Invalid selection {answer!r}")
    if not 1 <= selected <= len(workspaces):
        raise WorkspaceNotFoundError(f"Invalid selection {answer!r}")
    return workspaces[selected - 1]


def find_workspace(loganalytics_client, workspace_name=None, resource_group=None, prompt=input):
    workspaces = list_workspaces(loganalytics_client, resource_group)
    if workspace_name:
        workspaces = [w for w in workspaces if w.name.lower() == workspace_name.lower()]
        if not workspaces:
            raise WorkspaceNotFoundError(f"Workspace {workspace_name} not found")
        if len(workspaces) > 1:
            logger.warning(f"{len(workspaces)} workspaces are named {workspace_name}")
    workspace = choose_workspace(workspaces, prompt)
    logger.info(f"Using workspace {workspace.name} ({workspace.id})")
    return workspace


def confirm(question, prompt=input):
    return prompt(f"{question} [y/N]: ").strip().lower() in ("y", "yes")
