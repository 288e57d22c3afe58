from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from typing import Iterable, List, Optional, Sequence, Union, TYPE_CHECKING
import logging

from cctools.analysis.results import CalcQuery, CalcResult, CombinationRule, ExtrapolationPolicy, Provenance
from cctools.errors import InvalidDataError, OutOfDomainError
from cctools.io.handlers import CalcResultHandlerBase, NullResultHandler
from cctools.logging_config import format_scientific
from cctools.model.geometry_primitives import Point
from cctools.model.mesh import MeshFieldComponent

if TYPE_CHECKING:
    from cctools.model.model_handler import ModelHandler

logger = logging.getLogger(__name__)


class ModelCalculator:
    """
    Class for evaluating queries against a model.

    Every computation reads the current state of the ModelHandler, so changes
    made through `access_or_modify_target` apply to the next query.
    """

    def __init__(
        self,
        model: ModelHandler,
        result_handler: Optional[CalcResultHandlerBase] = None,
        rule: Union[CombinationRule, str] = CombinationRule.ADDITIVE,
        extrapolation: Union[ExtrapolationPolicy, str] = ExtrapolationPolicy.NONE,
    ) -> None:
        """
        Initialize the calculator with a model.

        Args:
            model: The model to evaluate.
            result_handler: Sink receiving every result. Defaults to a NullResultHandler.
            rule: How the harmonic correction is combined with the mesh value.
            extrapolation: What to do with query points outside the domain.
        """
        self.model = model
        self.result_handler = result_handler if result_handler is not None else NullResultHandler()
        self.rule = CombinationRule(rule)
        self.extrapolation = ExtrapolationPolicy(extrapolation)

    def compute(self, query: CalcQuery) -> CalcResult:
        """Evaluate one query and hand the result to the sink."""
        result = self._evaluate(query)
        self.result_handler.accept(result)
        return result

    def compute_point(
        self,
        point: Union[Point, Sequence[float]],
        drive_id: Optional[str] = None,
        x: float = 0.0,
        component: Union[MeshFieldComponent, str] = MeshFieldComponent.MAGNITUDE,
    ) -> CalcResult:
        return self.compute(CalcQuery.at(point, drive_id=drive_id, x=x, component=component))

    def compute_many(self, queries: Iterable[CalcQuery], max_workers: Optional[int] = None) -> List[CalcResult]:
        """
        Evaluate many queries.

        With `max_workers` the evaluations run in a thread pool. Results are
        always handed to the sink in input order, on the calling thread. The
        model must not be modified while this runs.
        """
        queries = list(queries)
        logger.info(f"Computing {len(queries)} queries (workers: {max_workers or 1}, rule: {self.rule}).")

        results: List[CalcResult] = []
        if max_workers is not None and max_workers > 1:
            with ThreadPoolExecutor(max_workers=max_workers) as executor:
                for result in executor.map(self._evaluate, queries):
                    self.result_handler.accept(result)
                    results.append(result)
        else:
            for query in queries:
                results.append(self.compute(query))

        logger.info(f"Computed {len(results)} results.")
        return results

    def reload_and_compute(self, query: CalcQuery) -> CalcResult:
        """Re-read the model file, then evaluate the query."""
        self.model.reload()
        return self.compute(query)

    def magnet_length(self) -> float:
        """Extent of the mesh samples along the z-axis."""
        z_min, z_max = self.model.mesh.min_max_z()
        return z_max - z_min

    def _evaluate(self, query: CalcQuery) -> CalcResult:
        if not isinstance(query, CalcQuery):
            raise InvalidDataError(f"Expected a CalcQuery, got {type(query).__name__}.")

        domain = self.model.domain
        point = query.point
        extrapolated = False

        if not domain.contains(point):
            if self.extrapolation == ExtrapolationPolicy.NONE:
                raise OutOfDomainError(f"Query point {point.to_list()} lies outside the domain {domain}.")
            extrapolated = True
            if self.extrapolation == ExtrapolationPolicy.CLAMP:
                point = domain.clamp(point)
            logger.debug(f"Extrapolating at {point.to_list()} ({self.extrapolation}).")

        interpolation = self.model.mesh.query_with_weights(point)
        if query.component not in interpolation.values:
            raise InvalidDataError(f"Mesh data has no {query.component} component.")
        mesh_value = interpolation.values[query.component]

        drive_parameters = None
        correction = 0.0
        if query.drive_id is not None:
            harmonics = self.model.harmonics
            drive_parameters = harmonics.get_parameters(query.drive_id).to_dict()
            correction = float(harmonics.evaluate(query.drive_id, query.x))

        value = self.rule.apply(mesh_value, correction)
        logger.debug(
            f"{point.to_list()}: mesh {format_scientific(mesh_value)}, "
            f"correction {format_scientific(correction)} -> {format_scientific(value)}"
        )

        return CalcResult(
            query=query,
            mesh_values=interpolation.values,
            mesh_value=mesh_value,
            harmonic_correction=correction,
            value=value,
            rule=self.rule,
            provenance=Provenance(
                evaluation_point=point,
                sample_indices=interpolation.indices,
                sample_weights=interpolation.weights,
                drive_id=query.drive_id,
                drive_parameters=drive_parameters,
                extrapolated=extrapolated,
            ),
        )
