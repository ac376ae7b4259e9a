# constructor/db/repositories/project_repository.py
import logging
import redis.asyncio as redis
from pydantic import ValidationError
from constructor.models.project import Project

logger = logging.getLogger(__name__)


class ProjectRepository:
    """
    Stores each project as one JSON document. Per user:
      workspace:<user>:projects  hash, project id -> project JSON
      workspace:<user>:order     list of project ids in creation order
      workspace:<user>:active    id of the active project
    """

    def __init__(self, client: redis.Redis):
        self.client = client

    @staticmethod
    def _projects_key(user_id: str) -> str:
        return f"workspace:{user_id}:projects"

    @staticmethod
    def _order_key(user_id: str) -> str:
        return f"workspace:{user_id}:order"

    @staticmethod
    def _active_key(user_id: str) -> str:
        return f"workspace:{user_id}:active"

    async def list_projects(self, user_id: str) -> list[Project]:
        raw_projects = await self.client.hgetall(self._projects_key(user_id))
        if not raw_projects:
            return []
        order = await self.client.lrange(self._order_key(user_id), 0, -1)

        projects = []
        for project_id in order + sorted(set(raw_projects) - set(order)):
            raw = raw_projects.get(project_id)
            if raw is None:
                continue
            try:
                projects.append(Project.model_validate_json(raw))
            except ValidationError as exc:
                logger.error("Skipping unreadable project %s for user %s: %s", project_id, user_id, exc)
        return projects

    async def save_project(self, user_id: str, project: Project) -> None:
        payload = project.model_dump_json(by_alias=True)
        is_new = await self.client.hset(self._projects_key(user_id), project.id, payload)
        if is_new:
            await self.client.rpush(self._order_key(user_id), project.id)

    async def delete_project(self, user_id: str, project_id: str) -> bool:
        deleted = await self.client.hdel(self._projects_key(user_id), project_id)
        await self.client.lrem(self._order_key(user_id), 0, project_id)
        return deleted > 0

    async def get_active_project_id(self, user_id: str) -> str | None:
        return await self.client.get(self._active_key(user_id))

    async def set_active_project_id(self, user_id: str, project_id: str) -> None:
        await self.client.set(self._active_key(user_id), project_id)
