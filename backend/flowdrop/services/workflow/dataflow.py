"""Data flow between connected nodes.

Builds the inputs of a node from the pipeline's initial data and the
outputs of its upstream jobs, following the port mappings recorded on the
job at generation time.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from typing import Any

from flowdrop.services.workflow.compiler import PortMapping
from flowdrop.services.workflow.dto import DEFAULT_PORT
from flowdrop.services.workflow.exceptions import DataFlowError

logger = logging.getLogger(__name__)


class DataFlowManager:
    """Resolves node inputs from upstream outputs.

    Rules, applied per incoming mapping in edge order:

    - trigger mappings carry no data
    - source port ``default`` passes the whole upstream output
    - a named source port passes that key of the upstream output, and a
      missing key raises ``DataFlowError``
    - target port ``default`` merges a dict value into the inputs, any
      other target port receives the value under its name
    """

    def build_inputs(
        self,
        initial_data: Mapping[str, Any] | None,
        incoming: Iterable[PortMapping | Mapping[str, Any]],
        upstream_outputs: Mapping[str, Mapping[str, Any]],
        skip_missing: bool = False,
    ) -> dict[str, Any]:
        """Assemble the inputs of a node.

        Args:
            initial_data: Pipeline input data, the base of every node's inputs.
            incoming: Port mappings of the edges entering the node.
            upstream_outputs: Outputs of upstream nodes keyed by node id.
            skip_missing: Skip mappings from upstream nodes without output
                instead of raising. Used for jobs gated by triggers, whose
                other upstream branches may never run.

        Returns:
            The merged input dictionary.

        Raises:
            DataFlowError: If an upstream node has no output or lacks the
                connected port.
        """
        inputs: dict[str, Any] = dict(initial_data or {})

        for raw in incoming:
            mapping = raw if isinstance(raw, PortMapping) else PortMapping.from_dict(raw)
            if mapping.is_trigger:
                continue

            if mapping.source_node not in upstream_outputs:
                if skip_missing:
                    continue
                raise DataFlowError(
                    f"No output available from upstream node '{mapping.source_node}'",
                    node_id=mapping.target_node,
                    port=mapping.target_input,
                )

            value = self.resolve_output(mapping, upstream_outputs[mapping.source_node])

            if mapping.target_input == DEFAULT_PORT and isinstance(value, Mapping):
                inputs.update(value)
            else:
                inputs[mapping.target_input] = value

        return inputs

    @staticmethod
    def resolve_output(mapping: PortMapping, output: Mapping[str, Any]) -> Any:
        """Pick the value a mapping reads from an upstream output.

        Raises:
            DataFlowError: If the named source port is not in the output.
        """
        if mapping.source_output in output:
            return output[mapping.source_output]
        if mapping.source_output == DEFAULT_PORT:
            return dict(output)
        logger.warning(
            "Upstream node %s has no output %r",
            mapping.source_node,
            mapping.source_output,
            extra={
                "context": {
                    "source_node": mapping.source_node,
                    "target_node": mapping.target_node,
                    "available": sorted(output),
                }
            },
        )
        raise DataFlowError(
            f"Missing output '{mapping.source_output}' from upstream node "
            f"'{mapping.source_node}'",
            node_id=mapping.target_node,
            port=mapping.source_output,
        )


__all__ = ["DataFlowManager"]
