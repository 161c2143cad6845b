"""
main.py — command line entry point for cube-vision state inference
==================================================================

Subcommands (all share `--model`, default `positions/model.json`):

 - `init`      build an empty model from a roles file (`--roles`) or from sticker
               center positions over a reference image (`--positions --image`).
 - `calibrate` record one or more images of the puzzle in a known state
               (`--state` 54-char facelet string, or `--moves` from solved).
 - `infer`     print the most likely state and its confidence; `--solve` also
               asks kociemba for a solution (3x3 only).
 - `overlay`   write a debug image showing which pixel plays which role.

Exit codes: 0 ok, 1 unexpected error, 2 bad input (missing file, wrong image
size, invalid state), 3 no legal state could be inferred.

------------------------------------------------------------------

Copyright (c) 2025 Facundo Gauna & Ulises Carnevale. MIT License.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from dataclasses import asdict
from typing import Optional, Sequence

import kociemba
import numpy as np

from app_types import ConfigurationError, InferenceResult
from config import DEFAULT_SEED, MODEL_PATH, ROLES_PATH
from cube_geometry import PUZZLE_NAME, from_facelet_string, to_facelet_string
from cv_processor import CVProcessor
from images import (load_image, load_positions, load_roles, read_image, render_overlay,
                    roles_from_positions, save_roles, write_image)
from puzzle import Permutation, resolve_puzzle

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")
logger = logging.getLogger("main")


def create_arg_parser() -> argparse.ArgumentParser:
    """
    Build and return the CLI argument parser.
    """
    p = argparse.ArgumentParser(description="Cube vision state inference", allow_abbrev=False)
    p.add_argument("--debug", action="store_true", help="Enable verbose logging.")
    p.add_argument("--model", default=str(MODEL_PATH), help="Model JSON file.")
    sub = p.add_subparsers(dest="command", required=True)

    init = sub.add_parser("init", help="Create an empty model from pixel roles.")
    init.add_argument("--puzzle", default=PUZZLE_NAME, help="Registered puzzle name.")
    init.add_argument("--roles", help="Roles JSON file.")
    init.add_argument("--positions", help="Sticker center positions JSON (alternative to --roles).")
    init.add_argument("--image", help="Reference image, required with --positions.")
    init.add_argument("--radius", type=int, default=6, help="Disc radius around each position.")
    init.add_argument("--save-roles", default=None,
                      help=f"Also write the derived roles (e.g. {ROLES_PATH}).")

    cal = sub.add_parser("calibrate", help="Record images of a known state.")
    cal.add_argument("images", nargs="+", help="Image files.")
    group = cal.add_mutually_exclusive_group()
    group.add_argument("--state", help="54-char facelet string (3x3).")
    group.add_argument("--moves", default="", help="Move sequence applied to the solved state.")

    inf = sub.add_parser("infer", help="Infer the state shown in an image.")
    inf.add_argument("image", help="Image file.")
    inf.add_argument("--seed", type=int, default=DEFAULT_SEED, help="Random seed.")
    inf.add_argument("--solve", action="store_true", help="Also print a kociemba solution.")
    inf.add_argument("--json", action="store_true", help="Print the result as JSON.")

    ov = sub.add_parser("overlay", help="Render the pixel roles over an image.")
    ov.add_argument("image", help="Image file.")
    ov.add_argument("--out", default="overlay.png", help="Output image.")

    return p


def _state_from_args(args, proc: CVProcessor) -> Permutation:
    if args.state:
        if proc.puzzle.name != PUZZLE_NAME:
            raise ConfigurationError("--state is only understood for the 3x3 cube; use --moves")
        return from_facelet_string(args.state)
    return proc.puzzle.apply_moves(proc.puzzle.identity(), args.moves)


def cmd_init(args) -> int:
    puzzle = resolve_puzzle(args.puzzle)
    if args.roles:
        roles = load_roles(args.roles)
    elif args.positions and args.image:
        h, w = read_image(args.image).shape[:2]
        roles = roles_from_positions(load_positions(args.positions), w, h, args.radius)
    else:
        logger.error("init needs --roles, or --positions together with --image")
        return 2

    proc = CVProcessor(len(roles), puzzle, roles)
    if args.save_roles:
        save_roles(args.save_roles, roles)
    proc.save(args.model)
    return 0


def cmd_calibrate(args) -> int:
    proc = CVProcessor.load(args.model)
    state = _state_from_args(args, proc)
    for path in args.images:
        proc.calibrate(load_image(path), state)
        logger.info("Calibrated with %s", path)
    logger.info("Calibration summary: %s", proc.calibration_summary())
    proc.save(args.model)
    return 0


def cmd_infer(args) -> int:
    proc = CVProcessor.load(args.model)
    result = proc.infer(load_image(args.image), np.random.default_rng(args.seed))
    if result is None:
        logger.error("No legal state matches %s", args.image)
        return 3

    perm, confidence = result
    if proc.puzzle.name == PUZZLE_NAME:
        facelets = to_facelet_string(perm)
    else:
        facelets = " ".join(str(v) for v in perm.mapping)
    out = InferenceResult(facelets=facelets, confidence=confidence)

    if args.solve:
        if proc.puzzle.name != PUZZLE_NAME:
            logger.error("--solve is only available for the 3x3 cube")
            return 2
        out.solution = kociemba.solve(facelets)

    if args.json:
        print(json.dumps(asdict(out), indent=2))
    else:
        print(f"state:      {out.facelets}")
        print(f"confidence: {out.confidence:.4f}")
        if out.solution is not None:
            print(f"solution:   {out.solution}")
    return 0


def cmd_overlay(args) -> int:
    proc = CVProcessor.load(args.model)
    img = read_image(args.image)
    h, w = img.shape[:2]
    overlay = render_overlay(img, proc.assigned_pixels(), w, proc.puzzle)
    logger.info("Overlay written to %s", write_image(args.out, overlay))
    return 0


COMMANDS = {
    "init": cmd_init,
    "calibrate": cmd_calibrate,
    "infer": cmd_infer,
    "overlay": cmd_overlay,
}


def main(argv: Optional[Sequence[str]] = None) -> int:
    """
    Main entry point.

    Supports direct CLI invocation or programmatic use via:
        main(["infer", "capture.png", "--solve"])

    Returns integer exit code.
    """
    args = create_arg_parser().parse_args(argv)

    if args.debug:
        logging.getLogger().setLevel(logging.DEBUG)
        logger.debug("Debug mode enabled.")

    try:
        return COMMANDS[args.command](args)
    except (FileNotFoundError, ConfigurationError) as e:
        logger.error("%s", e)
        return 2
    except Exception as e:
        logger.exception("Unhandled exception in %s: %s", args.command, e)
        return 1


if __name__ == "__main__":
    sys.exit(main())
