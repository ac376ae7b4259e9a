# constructor/services/workspace_service.py
import asyncio
import logging
from typing import Callable
from uuid import uuid4

from constructor.core.exceptions import NodeNotFoundException, ProjectNotFoundException
from constructor.db.repositories.project_repository import ProjectRepository
from constructor.models.graph import Edge, NodeGraph, NodeType, new_node
from constructor.models.project import Project, ProjectSummary, WorkspaceSummary, now_millis
from constructor.services.persistence import DebouncedSaver

logger = logging.getLogger(__name__)

DEFAULT_PROJECT_ID = "default-project"


def create_default_project() -> Project:
    """The starter workflow a brand-new workspace opens with."""
    return Project(
        id=DEFAULT_PROJECT_ID,
        name="My First Workflow",
        nodes=[
            new_node("1", NodeType.TEXT, {
                "title": "Project Context",
                "text": "We are building a marketing campaign for the new AI tool...",
            }),
            new_node("2", NodeType.CHAT, {"systemPrompt": "Marketing Expert"}),
        ],
        edges=[],
    )


class Workspace:
    """All projects of one user plus the one currently open. Never empty."""

    def __init__(self, projects: list[Project], active_project_id: str | None = None):
        if not projects:
            raise ValueError("A workspace needs at least one project.")
        self.projects: dict[str, Project] = {project.id: project for project in projects}
        if active_project_id not in self.projects:
            active_project_id = projects[0].id
        self.active_project_id = active_project_id

    @property
    def active_project(self) -> Project:
        return self.projects[self.active_project_id]

    def get_project(self, project_id: str) -> Project:
        project = self.projects.get(project_id)
        if project is None:
            raise ProjectNotFoundException(f"Project '{project_id}' not found.")
        return project

    def put_project(self, project: Project) -> None:
        self.projects[project.id] = project

    def remove_project(self, project_id: str) -> bool:
        """Refuses to remove the last project. Removing the active one promotes the first remaining."""
        if len(self.projects) <= 1 or project_id not in self.projects:
            return False
        del self.projects[project_id]
        if self.active_project_id == project_id:
            self.active_project_id = next(iter(self.projects))
        return True

    def summary(self) -> WorkspaceSummary:
        return WorkspaceSummary(
            active_project_id=self.active_project_id,
            projects=[ProjectSummary.from_project(project) for project in self.projects.values()],
        )


class WorkspaceService:
    """
    Owns the in-memory workspaces of all users and is the only writer of their graphs.
    Graph edits replace whole projects and are saved through a debounce; project
    creation, renaming, deletion and switching are written straight away.
    """

    def __init__(self, repository: ProjectRepository, save_delay: float = 1.0):
        self.repo = repository
        self.saver = DebouncedSaver(self.repo.save_project, delay=save_delay)
        self._workspaces: dict[str, Workspace] = {}
        self._lock = asyncio.Lock()

    async def get_workspace(self, user_id: str) -> Workspace:
        workspace = self._workspaces.get(user_id)
        if workspace is not None:
            return workspace

        async with self._lock:
            workspace = self._workspaces.get(user_id)
            if workspace is None:
                workspace = await self._load_workspace(user_id)
                self._workspaces[user_id] = workspace
        return workspace

    async def _load_workspace(self, user_id: str) -> Workspace:
        projects = await self.repo.list_projects(user_id)
        if not projects:
            logger.info("Seeding default project for new workspace %s", user_id, extra={"user_id": user_id})
            project = create_default_project()
            await self.repo.save_project(user_id, project)
            await self.repo.set_active_project_id(user_id, project.id)
            return Workspace([project], project.id)
        active_project_id = await self.repo.get_active_project_id(user_id)
        return Workspace(projects, active_project_id)

    async def get_summary(self, user_id: str) -> WorkspaceSummary:
        return (await self.get_workspace(user_id)).summary()

    async def get_project(self, user_id: str, project_id: str | None = None) -> Project:
        workspace = await self.get_workspace(user_id)
        if project_id is None:
            return workspace.active_project
        return workspace.get_project(project_id)

    async def create_project(self, user_id: str, name: str | None = None) -> Project:
        workspace = await self.get_workspace(user_id)
        project = Project(
            id=f"project_{uuid4().hex[:12]}",
            name=name or f"Untitled Project {len(workspace.projects) + 1}",
        )
        workspace.put_project(project)
        await self.repo.save_project(user_id, project)
        await self._activate(user_id, workspace, project.id)
        return project

    async def rename_project(self, user_id: str, project_id: str, name: str) -> Project:
        workspace = await self.get_workspace(user_id)
        project = workspace.get_project(project_id).model_copy(update={"name": name, "updated_at": now_millis()})
        workspace.put_project(project)
        # The renamed copy already holds any pending graph edits.
        async with self.saver.lock(user_id, project_id):
            self.saver.discard(user_id, project_id)
            await self.repo.save_project(user_id, project)
        return project

    async def delete_project(self, user_id: str, project_id: str) -> bool:
        """Returns False, changing nothing, when the project is the last one."""
        workspace = await self.get_workspace(user_id)
        workspace.get_project(project_id)
        was_active = workspace.active_project_id == project_id
        if not workspace.remove_project(project_id):
            logger.info(
                "Refusing to delete project %s for user %s", project_id, user_id,
                extra={"user_id": user_id, "project_id": project_id},
            )
            return False
        async with self.saver.lock(user_id, project_id):
            self.saver.discard(user_id, project_id)
            await self.repo.delete_project(user_id, project_id)
        if was_active:
            await self.repo.set_active_project_id(user_id, workspace.active_project_id)
        return True

    async def set_active_project(self, user_id: str, project_id: str) -> Project:
        workspace = await self.get_workspace(user_id)
        workspace.get_project(project_id)
        await self._activate(user_id, workspace, project_id)
        return workspace.active_project

    async def _activate(self, user_id: str, workspace: Workspace, project_id: str) -> None:
        previous = workspace.active_project_id
        if previous != project_id:
            await self.saver.flush(user_id, previous)
        workspace.active_project_id = project_id
        await self.repo.set_active_project_id(user_id, project_id)

    async def update_graph(
        self,
        user_id: str,
        mutate: Callable[[NodeGraph], NodeGraph],
        project_id: str | None = None,
    ) -> Project:
        """
        Applies `mutate` to the current graph of a project (the active one by default),
        stores the resulting copy and schedules a debounced save.
        """
        workspace = await self.get_workspace(user_id)
        project = workspace.active_project if project_id is None else workspace.get_project(project_id)
        updated = project.with_graph(mutate(project.graph))
        workspace.put_project(updated)
        self.saver.schedule(user_id, updated)
        return updated

    async def replace_graph(self, user_id: str, graph: NodeGraph) -> Project:
        return await self.update_graph(user_id, lambda _: graph)

    async def get_node(self, user_id: str, node_id: str, project_id: str | None = None):
        project = await self.get_project(user_id, project_id)
        node = project.graph.get_node(node_id)
        if node is None:
            raise NodeNotFoundException(f"Node '{node_id}' not found.")
        return node

    async def add_node(self, user_id: str, node_type: NodeType, data: dict | None = None, node_id: str | None = None):
        node = new_node(node_id or f"node_{uuid4().hex[:12]}", node_type, data)
        project = await self.get_project(user_id)
        if project.graph.has_node(node.id):
            raise ValueError(f"Node '{node.id}' already exists.")
        await self.update_graph(user_id, lambda graph: graph.with_added_node(node))
        return node

    async def update_node(self, user_id: str, node_id: str, update, project_id: str | None = None):
        """
        Replaces one node by id with `update(node)`. Returns the new node, or None
        when the node (or its project) is gone by now.
        """
        workspace = await self.get_workspace(user_id)
        if project_id is not None and project_id not in workspace.projects:
            return None
        project = workspace.active_project if project_id is None else workspace.projects[project_id]
        node = project.graph.get_node(node_id)
        if node is None:
            return None
        updated = update(node)
        if updated is node:
            return node
        await self.update_graph(user_id, lambda graph: graph.with_node(updated), project_id=project.id)
        return updated

    async def update_node_data(self, user_id: str, node_id: str, changes: dict):
        """Merges canvas-keyed fields into a node's data, as typing into a node does."""
        def _merge(node):
            data = node.data.model_validate({**node.data.model_dump(by_alias=True), **changes})
            return node.model_copy(update={"data": data})

        updated = await self.update_node(user_id, node_id, _merge)
        if updated is None:
            raise NodeNotFoundException(f"Node '{node_id}' not found.")
        return updated

    async def delete_node(self, user_id: str, node_id: str) -> bool:
        project = await self.get_project(user_id)
        if not project.graph.has_node(node_id):
            return False
        await self.update_graph(user_id, lambda graph: graph.without_node(node_id))
        return True

    async def add_edge(self, user_id: str, edge: Edge) -> Edge:
        project = await self.get_project(user_id)
        if not (project.graph.has_node(edge.source) and project.graph.has_node(edge.target)):
            raise NodeNotFoundException("One or both nodes for the edge not found in this project.")
        if edge.id is None:
            edge = edge.model_copy(update={"id": f"e{edge.source}-{edge.target}"})
        await self.update_graph(user_id, lambda graph: graph.with_added_edge(edge))
        return edge

    async def delete_edge(self, user_id: str, source: str, target: str) -> bool:
        project = await self.get_project(user_id)
        if not any(edge.source == source and edge.target == target for edge in project.edges):
            return False
        await self.update_graph(user_id, lambda graph: graph.without_edge(source, target))
        return True

    async def flush(self) -> None:
        await self.saver.flush()
