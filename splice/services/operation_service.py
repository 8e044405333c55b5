"""Operation Service: run an operation and record it in project history.

The pipeline never touches the project record. This service is the external
collaborator that loads the project, runs the pipeline and, only after the
artifact exists, appends the operation and moves ``current_head``.
"""

import logging
from dataclasses import dataclass
from typing import Any, Protocol

from splice.exceptions import ProjectNotFoundError
from splice.render.pipeline import OperationPipeline, ProgressCallback
from splice.schemas.operation import Operation, parse_operation
from splice.schemas.project import PriorOperation, Project

logger = logging.getLogger(__name__)


class ProjectStore(Protocol):
    """Persistence for project records."""

    def get_project(self, project_id: str) -> Project | None: ...

    def append_operation(self, project_id: str, operation: Operation, new_head: str) -> Project: ...


class InMemoryProjectStore:
    """Dict-backed ``ProjectStore``."""

    def __init__(self, projects: list[Project] | None = None):
        self._projects: dict[str, Project] = {p.id: p for p in projects or []}

    def save(self, project: Project) -> None:
        self._projects[project.id] = project

    def get_project(self, project_id: str) -> Project | None:
        return self._projects.get(project_id)

    def append_operation(self, project_id: str, operation: Operation, new_head: str) -> Project:
        project = self._projects.get(project_id)
        if project is None:
            raise ProjectNotFoundError(project_id)
        updated = project.model_copy(
            update={
                "operations": (*project.operations, PriorOperation.from_operation(operation)),
                "current_head": new_head,
            }
        )
        self._projects[project_id] = updated
        return updated


@dataclass
class AppliedOperation:
    project: Project
    operation: Operation
    artifact_path: str


class OperationService:
    """Service for applying operations to stored projects."""

    def __init__(self, store: ProjectStore, pipeline: OperationPipeline | None = None):
        self.store = store
        self.pipeline = pipeline or OperationPipeline()

    async def apply(
        self,
        project_id: str,
        operation: Operation | dict[str, Any],
        on_progress: ProgressCallback | None = None,
    ) -> AppliedOperation:
        """Process ``operation`` against the stored project and record it.

        Raises:
            ProjectNotFoundError: If the project does not exist
            SpliceError: Any pipeline failure; the project is left untouched
        """
        project = self.store.get_project(project_id)
        if project is None:
            raise ProjectNotFoundError(project_id)

        operation = parse_operation(operation)
        artifact_path = await self.pipeline.process(project, operation, on_progress)

        updated = self.store.append_operation(project_id, operation, artifact_path)
        logger.info(
            f"Recorded operation {operation.id}: {operation.type} "
            f"(project={project_id}, head={artifact_path})"
        )
        return AppliedOperation(project=updated, operation=operation, artifact_path=artifact_path)
