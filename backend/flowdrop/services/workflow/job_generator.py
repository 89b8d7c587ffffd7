"""Job generation.

Expands a compiled workflow into one ``Job`` per node for a given pipeline
run and wires ``depends_on`` between the generated jobs.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from flowdrop.core.config import settings
from flowdrop.models.enums import JobStatus, PriorityStrategy
from flowdrop.models.pipeline import Job, Pipeline
from flowdrop.services.pipeline_service import JobService

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from flowdrop.services.workflow.compiler import CompiledWorkflow, NodeMapping


@dataclass
class JobGenerationResult:
    """Outcome of ``JobGenerator.generate_jobs``.

    Attributes:
        jobs: Jobs created, in execution order
        created: Number of jobs created (0 when generation was refused)
        warnings: Reasons for refusing or adjusting generation
    """

    jobs: list[Job] = field(default_factory=list)
    created: int = 0
    warnings: list[str] = field(default_factory=list)

    @property
    def refused(self) -> bool:
        return self.created == 0 and bool(self.warnings)


@dataclass(frozen=True)
class ClearJobsResult:
    """Outcome of ``JobGenerator.clear_jobs``."""

    pipeline_id: str
    count: int


class JobGenerator:
    """Creates the jobs of a pipeline run from its compiled workflow.

    Generation never duplicates jobs: a pipeline that already has jobs is
    refused with a warning and must be cleared first.
    """

    def __init__(self, logger: logging.Logger | None = None) -> None:
        self.logger = logger or logging.getLogger(__name__)

    async def generate_jobs(
        self,
        db: AsyncSession,
        pipeline: Pipeline,
        compiled: CompiledWorkflow,
    ) -> JobGenerationResult:
        """Create one pending job per node of the execution plan.

        Jobs are created in execution order, so the jobs a node depends on
        always exist when the node's own job is built.

        Args:
            db: Database session (flushed, not committed).
            pipeline: The pipeline run.
            compiled: The compiled workflow.

        Returns:
            JobGenerationResult with the created jobs or a refusal warning.
        """
        existing = await JobService.count_by_pipeline(db, pipeline.id)
        if existing:
            warning = f"Pipeline already has {existing} jobs"
            self.logger.warning(
                "Refusing to generate jobs: %s",
                warning,
                extra={"context": {"pipeline_id": str(pipeline.id), "existing_jobs": existing}},
            )
            return JobGenerationResult(warnings=[warning])

        plan = compiled.execution_plan
        strategy = pipeline.get_option("job_priority_strategy", PriorityStrategy.CONFIG)
        node_to_job: dict[str, Job] = {}
        jobs: list[Job] = []

        for position, node_id in enumerate(plan.execution_order):
            mapping = compiled.node_mappings[node_id]
            dependencies = compiled.get_dependencies(node_id)
            config = dict(mapping.config)

            job = Job(
                id=uuid.uuid4(),
                pipeline_id=pipeline.id,
                node_id=node_id,
                label=mapping.label or f"Job {node_id}",
                processor_type=mapping.processor_type,
                config=config,
                status=JobStatus.PENDING,
                priority=self.calculate_priority(mapping, len(dependencies), strategy),
                position=position,
                input_data={},
                output_data={},
                depends_on=[str(node_to_job[dep].id) for dep in dependencies],
                metadata_=self._build_metadata(compiled, mapping),
                retry_count=0,
                max_retries=self._max_retries(node_id, config),
            )
            node_to_job[node_id] = job
            jobs.append(job)

        db.add_all(jobs)
        await db.flush()

        self.logger.info(
            "Generated %d jobs for pipeline %s",
            len(jobs),
            pipeline.id,
            extra={
                "context": {
                    "pipeline_id": str(pipeline.id),
                    "workflow_id": compiled.workflow_id,
                    "jobs_created": len(jobs),
                }
            },
        )
        return JobGenerationResult(jobs=jobs, created=len(jobs))

    async def clear_jobs(self, db: AsyncSession, pipeline: Pipeline) -> ClearJobsResult:
        """Delete every job of a pipeline.

        Returns:
            ClearJobsResult with the number of deleted jobs.
        """
        count = await JobService.delete_by_pipeline(db, pipeline.id)
        self.logger.info(
            "Cleared %d jobs from pipeline %s",
            count,
            pipeline.id,
            extra={"context": {"pipeline_id": str(pipeline.id), "jobs_deleted": count}},
        )
        return ClearJobsResult(pipeline_id=str(pipeline.id), count=count)

    @staticmethod
    def calculate_priority(
        mapping: NodeMapping,
        dependency_count: int,
        strategy: PriorityStrategy | str = PriorityStrategy.CONFIG,
    ) -> int:
        """Priority of a node's job; lower runs first.

        ``config`` uses the node's ``priority`` config key (default 0).
        ``dependency_order`` scores ``10`` per dependency, pulls input
        nodes forward by 50 and pushes output nodes back by 50.
        """
        if strategy == PriorityStrategy.DEPENDENCY_ORDER:
            priority = dependency_count * 10
            processor_type = mapping.processor_type.lower()
            if "input" in processor_type:
                priority -= 50
            elif "output" in processor_type:
                priority += 50
            return priority

        try:
            return int(mapping.config.get("priority", 0))
        except (TypeError, ValueError):
            return 0

    def _max_retries(self, node_id: str, config: dict[str, Any]) -> int:
        value = config.get("max_retries", config.get("maxRetries"))
        if value is None:
            return settings.DEFAULT_MAX_RETRIES
        try:
            return max(0, int(value))
        except (TypeError, ValueError):
            self.logger.warning(
                "Invalid max_retries %r on node %s, using %d",
                value,
                node_id,
                settings.DEFAULT_MAX_RETRIES,
                extra={"context": {"node_id": node_id}},
            )
            return settings.DEFAULT_MAX_RETRIES

    @staticmethod
    def _build_metadata(compiled: CompiledWorkflow, mapping: NodeMapping) -> dict[str, Any]:
        plan = compiled.execution_plan
        return {
            "node_type_id": mapping.processor_type,
            "category": mapping.category,
            "is_gateway": mapping.is_gateway,
            "incoming_edges": [m.to_dict() for m in plan.get_input_mappings(mapping.node_id)],
            "outgoing_edges": [m.to_dict() for m in plan.get_output_mappings(mapping.node_id)],
        }


__all__ = [
    "ClearJobsResult",
    "JobGenerationResult",
    "JobGenerator",
]
