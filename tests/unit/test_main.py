"""
CLI tests for main.py: init -> calibrate -> infer through `main([...])`.
"""

import json

import cv2
import numpy as np
import pytest

from cube_geometry import from_facelet_string
from cv_processor import CVProcessor
from images import save_roles, write_image
from main import main

WIDTH = 36  # simulator images hold 1080 pixels -> 36 x 30


def _write_capture(path, simulator, state, rng):
    rgb = simulator.render(state, rng).reshape(-1, WIDTH, 3)
    bgr = cv2.cvtColor(np.round(rgb * 255).astype(np.uint8), cv2.COLOR_RGB2BGR)
    return str(write_image(path, bgr))


@pytest.fixture
def model(tmp_path, simulator):
    roles = str(save_roles(tmp_path / "roles.json", simulator.roles))
    path = str(tmp_path / "model.json")
    assert main(["--model", path, "init", "--roles", roles]) == 0
    return path


class TestCommandLine:
    def test_calibrate(self, model, simulator, cube, rng, tmp_path):
        captures = [_write_capture(tmp_path / f"cal{n}.png", simulator, cube.identity(), rng) for n in range(3)]
        assert main(["--model", model, "calibrate", *captures]) == 0

        with open(model, encoding="utf-8") as f:
            saved = json.load(f)
        assert saved["model"]["calibrations"] == 3
        assert sum(len(p) for per_slot in saved["model"]["observations"]["points"]
                   for p in per_slot.values()) == 3 * 48 * 20

    def test_infer_and_solve(self, simulator, cube, rng, tmp_path, capsys):
        chain = cube.stabilizer_chain()
        proc = CVProcessor(simulator.pixel_count, cube, simulator.roles)
        for _ in range(30):
            state = chain.random(rng)
            proc.calibrate(simulator.render(state, rng), state)
        model = str(proc.save(tmp_path / "model.json"))

        target = _write_capture(tmp_path / "target.png", simulator, chain.random(rng), rng)
        capsys.readouterr()
        assert main(["--model", model, "infer", target, "--json", "--solve"]) == 0
        out = json.loads(capsys.readouterr().out)
        assert chain.contains(from_facelet_string(out["facelets"]))
        assert 0.0 <= out["confidence"] <= 1.0
        assert isinstance(out["solution"], str)

    def test_calibrate_with_moves(self, model, simulator, cube, rng, tmp_path):
        state = cube.apply_moves(cube.identity(), "R U R' F2")
        capture = _write_capture(tmp_path / "moved.png", simulator, state, rng)
        assert main(["--model", model, "calibrate", capture, "--moves", "R U R' F2"]) == 0

    def test_invalid_state_string(self, model, simulator, cube, rng, tmp_path):
        capture = _write_capture(tmp_path / "cal.png", simulator, cube.identity(), rng)
        bad = "U" * 54
        assert main(["--model", model, "calibrate", capture, "--state", bad]) == 2

    def test_overlay(self, model, simulator, cube, rng, tmp_path):
        capture = _write_capture(tmp_path / "cal.png", simulator, cube.identity(), rng)
        out = tmp_path / "overlay.png"
        assert main(["--model", model, "overlay", capture, "--out", str(out)]) == 0
        assert cv2.imread(str(out)).shape == (30, WIDTH, 3)

    def test_missing_model(self, tmp_path):
        assert main(["--model", str(tmp_path / "none.json"), "infer", "x.png"]) == 2

    def test_init_needs_roles_or_positions(self, tmp_path):
        assert main(["--model", str(tmp_path / "m.json"), "init"]) == 2
