"""
Unit tests for inference.py: calibration bookkeeping and confidence vectors.
"""

import numpy as np
import pytest

from app_types import ConfigurationError, Sticker, UNASSIGNED, WhiteBalance
from inference import ConfidenceInferencer, check_image
from puzzle import Permutation


@pytest.fixture
def inferencer(cube, simulator):
    return ConfidenceInferencer(cube, simulator.roles, simulator.pixel_count)


class TestConstruction:
    def test_role_count_must_match(self, cube):
        with pytest.raises(ConfigurationError):
            ConfidenceInferencer(cube, [UNASSIGNED] * 3, 4)

    def test_slot_out_of_range(self, cube):
        with pytest.raises(ConfigurationError):
            ConfidenceInferencer(cube, [Sticker(48)], 1)

    def test_unknown_white_balance_face(self, cube):
        with pytest.raises(ConfigurationError):
            ConfidenceInferencer(cube, [WhiteBalance("U")], 1)

    def test_check_image(self):
        assert check_image(np.zeros((2, 2, 3)), 4).shape == (4, 3)
        with pytest.raises(ConfigurationError):
            check_image(np.zeros((5, 3)), 4)


class TestConfidenceVectors:
    def test_no_data_constant(self, cube, simulator, inferencer, rng):
        vectors = inferencer.infer(simulator.render(cube.identity(), rng), rng)
        assert len(vectors) == 48
        for vec in vectors:
            assert set(vec) == set(cube.colors())
            assert all(v == pytest.approx(1.0 / (6 * 48)) for v in vec.values())

    def test_bounds_after_calibration(self, cube, simulator, inferencer, rng):
        chain = cube.stabilizer_chain()
        for _ in range(5):
            inferencer.calibrate(simulator.render(chain.random(rng), rng), chain.random(rng))
        vectors = inferencer.infer(simulator.render(chain.random(rng), rng), rng)
        for vec in vectors:
            assert set(vec) == set(cube.colors())
            for value in vec.values():
                assert np.isfinite(value) and 0.0 <= value <= 1.0

    def test_shown_color_wins(self, cube, quiet_simulator, inferencer, rng):
        # with a single colour of data per slot every colour normalises to the same
        # value, so calibrate on enough scrambles to give every (slot, colour) data
        chain = cube.stabilizer_chain()
        for _ in range(60):
            state = chain.random(rng)
            inferencer.calibrate(quiet_simulator.render(state, rng), state)
        assert inferencer.calibration_summary()["empty_indices"] <= 1

        shown = chain.random(rng)
        vectors = inferencer.infer(quiet_simulator.render(shown, rng), rng)
        colors = cube.facelet_colors()
        wrong = [slot for slot, vec in enumerate(vectors)
                 if max(vec, key=vec.get) != colors[shown.comes_from(slot)]]
        assert len(wrong) <= 2

    def test_single_color_of_data_is_uninformative(self, cube, simulator, inferencer, rng):
        for _ in range(2):
            inferencer.calibrate(simulator.render(cube.identity(), rng), cube.identity())
        vectors = inferencer.infer(simulator.render(cube.identity(), rng), rng)
        for vec in vectors:
            assert all(v == pytest.approx(1.0 / (6 * 48)) for v in vec.values())

    def test_inference_is_read_only_and_repeatable(self, cube, simulator, inferencer, rng):
        inferencer.calibrate(simulator.render(cube.identity(), rng), cube.identity())
        image = simulator.render(cube.identity(), rng)
        before = inferencer.calibration_summary()
        first = inferencer.infer(image)
        second = inferencer.infer(image)
        assert first == second
        assert inferencer.calibration_summary() == before

    def test_wrong_image_size(self, inferencer):
        with pytest.raises(ConfigurationError):
            inferencer.infer(np.zeros((10, 3)))

    def test_wrong_state_degree(self, cube, simulator, inferencer, rng):
        with pytest.raises(ConfigurationError):
            inferencer.calibrate(simulator.render(cube.identity(), rng), Permutation.identity(10))


class TestCalibrationSummary:
    def test_counts_and_invalidation(self, cube, simulator, inferencer, rng):
        summary = inferencer.calibration_summary()
        assert summary["empty_indices"] == 48 * 6
        assert inferencer.calibration_summary() is summary

        inferencer.calibrate(simulator.render(cube.identity(), rng), cube.identity())
        updated = inferencer.calibration_summary()
        assert updated is not summary
        assert updated["calibrations"] == 1
        assert sum(updated["points_by_color"].values()) == 48 * 20
        assert updated["empty_indices"] == 48 * 5
