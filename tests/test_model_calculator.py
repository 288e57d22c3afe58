import json
import math
import os
import shutil
import tempfile
import unittest

from cctools.analysis.results import CalcQuery, CombinationRule, ExtrapolationPolicy
from cctools.errors import InvalidDataError, OutOfDomainError, UnknownDriveError
from cctools.io.handlers import InMemoryResultHandler, NullResultHandler
from cctools.model.geometry_primitives import Point
from cctools.model.mesh import MeshFieldComponent
from cctools.model.model_handler import ModelHandler
from cctools.solvers.calculator import ModelCalculator


def end_to_end_config():
    return {
        "domain": {"min": [0, 0, 0], "max": [10, 10, 10]},
        "mesh": [{"pos": [5, 5, 5], "LONGITUDINAL": 1.0, "NORMAL": 2.0, "TRANSVERSE": 3.0}],
        "drives": {"d1": {"Offset": 0.1, "Slope": 0.01, "Constant": 0.0}},
    }


class ModelCalculatorTests(unittest.TestCase):

    def setUp(self):
        self.model = ModelHandler(end_to_end_config())
        self.sink = InMemoryResultHandler()
        self.calculator = ModelCalculator(self.model, self.sink)

    def test_end_to_end(self):
        result = self.calculator.compute(CalcQuery(Point(5, 5, 5), drive_id="d1", x=10.0))

        self.assertAlmostEqual(result.value, 3.9417, delta=1e-3)
        self.assertAlmostEqual(result.mesh_value, math.sqrt(14.0), places=12)
        self.assertAlmostEqual(result.harmonic_correction, 0.2, places=12)
        self.assertEqual(result.rule, CombinationRule.ADDITIVE)
        self.assertEqual(result.provenance.sample_indices, (0,))
        self.assertEqual(result.provenance.drive_parameters, {"Offset": 0.1, "Slope": 0.01, "Constant": 0.0})
        self.assertFalse(result.provenance.extrapolated)
        self.assertEqual(self.sink.results, [result])

    def test_without_drive(self):
        result = self.calculator.compute_point([5, 5, 5])
        self.assertEqual(result.harmonic_correction, 0.0)
        self.assertAlmostEqual(result.value, math.sqrt(14.0), places=12)

    def test_component_selection(self):
        result = self.calculator.compute_point([5, 5, 5], drive_id="d1", x=0.0, component="NORMAL")
        self.assertAlmostEqual(result.value, 2.1, places=12)
        self.assertEqual(result.mesh_values[MeshFieldComponent.TRANSVERSE], 3.0)

    def test_results_are_read_only(self):
        result = self.calculator.compute_point([5, 5, 5], drive_id="d1", x=10.0)
        with self.assertRaises(TypeError):
            result.mesh_values[MeshFieldComponent.NORMAL] = 0.0
        with self.assertRaises(TypeError):
            result.provenance.drive_parameters["Slope"] = 1.0
        self.assertEqual(self.model.access_or_modify_target("drives.d1.Slope"), 0.01)

    def test_correction_goes_through_harmonics_handler(self):
        with self.assertLogs("cctools.analysis.harmonics_data_handler", level="DEBUG") as logs:
            self.calculator.compute_point([5, 5, 5], drive_id="d1", x=10.0)
        self.assertTrue(any("Drive 'd1'" in line for line in logs.output))

    def test_multiplicative_rule(self):
        calculator = ModelCalculator(self.model, rule=CombinationRule.MULTIPLICATIVE)
        result = calculator.compute_point([5, 5, 5], drive_id="d1", x=10.0)
        self.assertAlmostEqual(result.value, math.sqrt(14.0) * 1.2, places=12)

    def test_outside_domain(self):
        with self.assertRaises(OutOfDomainError):
            self.calculator.compute_point([10.5, 5, 5])
        self.assertEqual(self.sink.count, 0)

    def test_extrapolation_policies(self):
        allow = ModelCalculator(self.model, extrapolation=ExtrapolationPolicy.ALLOW)
        result = allow.compute_point([15, 5, 5])
        self.assertTrue(result.provenance.extrapolated)
        self.assertEqual(result.provenance.evaluation_point, Point(15.0, 5.0, 5.0))

        clamp = ModelCalculator(self.model, extrapolation="clamp")
        result = clamp.compute_point([15, 5, 5])
        self.assertTrue(result.provenance.extrapolated)
        self.assertEqual(result.provenance.evaluation_point, Point(10.0, 5.0, 5.0))
        self.assertEqual(result.query.point, Point(15.0, 5.0, 5.0))

    def test_unknown_drive(self):
        with self.assertRaises(UnknownDriveError):
            self.calculator.compute_point([5, 5, 5], drive_id="d2")

    def test_missing_component(self):
        model = ModelHandler({
            "domain": {"min": [0, 0, 0], "max": [1, 1, 1]},
            "mesh": [{"pos": [0, 0, 0], "MAGNITUDE": 1.0}],
        })
        calculator = ModelCalculator(model)
        self.assertEqual(calculator.compute_point([0.5, 0.5, 0.5]).value, 1.0)
        with self.assertRaises(InvalidDataError):
            calculator.compute_point([0.5, 0.5, 0.5], component=MeshFieldComponent.NORMAL)

    def test_empty_mesh(self):
        calculator = ModelCalculator(ModelHandler({"domain": {"min": [0, 0, 0], "max": [1, 1, 1]}}))
        with self.assertRaises(InvalidDataError):
            calculator.compute_point([0.5, 0.5, 0.5])

    def test_changes_apply_to_next_query(self):
        before = self.calculator.compute_point([5, 5, 5], drive_id="d1", x=10.0)
        self.model.access_or_modify_target("drives.d1.Slope", 0.02)
        after = self.calculator.compute_point([5, 5, 5], drive_id="d1", x=10.0)

        self.assertAlmostEqual(after.value - before.value, 0.1, places=12)
        # results already emitted are not affected
        self.assertAlmostEqual(before.harmonic_correction, 0.2, places=12)

    def test_compute_many_keeps_input_order(self):
        self.model.access_or_modify_target("mesh", [
            {"pos": [0, 0, 0], "MAGNITUDE": 1.0},
            {"pos": [10, 10, 10], "MAGNITUDE": 3.0},
            {"pos": [10, 0, 0], "MAGNITUDE": 2.0},
        ])
        queries = [CalcQuery.at([i, i, i], drive_id="d1", x=float(i)) for i in range(11)]

        sequential = ModelCalculator(self.model, InMemoryResultHandler()).compute_many(queries)
        sink = InMemoryResultHandler()
        parallel = ModelCalculator(self.model, sink).compute_many(queries, max_workers=4)

        self.assertEqual([r.value for r in parallel], [r.value for r in sequential])
        self.assertEqual([r.query for r in sink.results], queries)

    def test_default_sink(self):
        calculator = ModelCalculator(self.model)
        self.assertIsInstance(calculator.result_handler, NullResultHandler)
        calculator.compute_point([5, 5, 5])
        self.assertEqual(calculator.result_handler.count, 1)

    def test_magnet_length(self):
        self.model.access_or_modify_target("mesh", [
            {"pos": [0, 0, 1], "MAGNITUDE": 1.0},
            {"pos": [0, 0, 7.5], "MAGNITUDE": 1.0},
        ])
        self.assertEqual(self.calculator.magnet_length(), 6.5)

    def test_reload_and_compute(self):
        tmp_dir = tempfile.mkdtemp()
        self.addCleanup(shutil.rmtree, tmp_dir)
        path = os.path.join(tmp_dir, "model.json")
        ModelHandler(end_to_end_config()).save(path)

        model = ModelHandler.from_file(path)
        self.addCleanup(model.cleanup)
        calculator = ModelCalculator(model)

        config = model.to_dict()
        config["drives"]["d1"]["Offset"] = 1.1
        with open(model.temp_json_path, "w", encoding="utf-8") as f:
            json.dump(config, f)

        result = calculator.reload_and_compute(CalcQuery.at([5, 5, 5], drive_id="d1", x=10.0))
        self.assertAlmostEqual(result.harmonic_correction, 1.2, places=12)


if __name__ == '__main__':
    unittest.main()
