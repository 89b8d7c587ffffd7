"""Workflow compilation and orchestration engine.

Components, leaves first:

- dto: typed graph model (nodes, edges, ports) with an edge index
- graph / algorithms: generic directed graph, cycle detection, topological sort
- compiler: validation and execution plan generation
- job_generator: jobs of a pipeline run from a compiled workflow
- dataflow / runtime / processors: single node execution
- orchestrators: synchronous loop and queue-backed asynchronous execution
- queue / worker / retry: durable work queue, worker pool, retry decisions
- monitor / error_handler: execution monitoring and error categorization

Example:
    >>> from flowdrop.services.workflow import WorkflowCompiler
    >>> compiled = WorkflowCompiler().compile(graph_data)
    >>> compiled.execution_plan.execution_order
    ('a', 'b', 'c')

Orchestrators and workers are imported from their own modules.
"""

from flowdrop.services.workflow.algorithms import GraphAlgorithms
from flowdrop.services.workflow.compiler import (
    CompiledWorkflow,
    ExecutionPlan,
    NodeMapping,
    PortMapping,
    WorkflowCompiler,
)
from flowdrop.services.workflow.dto import GraphEdge, GraphNode, WorkflowGraph
from flowdrop.services.workflow.exceptions import (
    CompilationError,
    CompiledWorkflowMismatchError,
    CycleDetectedError,
    DataFlowError,
    NodeExecutionError,
    NodeTimeoutError,
    OrchestrationError,
    PipelineStateError,
    ResourceLimitError,
)
from flowdrop.services.workflow.graph import Graph

__all__ = [
    # Graph model
    "Graph",
    "GraphAlgorithms",
    "GraphEdge",
    "GraphNode",
    "WorkflowGraph",
    # Compiler
    "CompiledWorkflow",
    "ExecutionPlan",
    "NodeMapping",
    "PortMapping",
    "WorkflowCompiler",
    # Exceptions
    "CompilationError",
    "CompiledWorkflowMismatchError",
    "CycleDetectedError",
    "DataFlowError",
    "NodeExecutionError",
    "NodeTimeoutError",
    "OrchestrationError",
    "PipelineStateError",
    "ResourceLimitError",
]
