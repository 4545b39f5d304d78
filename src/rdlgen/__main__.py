# Copyright (c) 2024 Nordic Semiconductor ASA
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations

import argparse
import dataclasses
import json
import logging
import sys
from pathlib import Path
from textwrap import dedent

import rdlgen
from rdlgen.emitter import TARGETS, Selector


def cli() -> None:
    top = argparse.ArgumentParser(
        description=dedent(
            """\
            Generate register access code from register descriptions.
            """
        ),
        allow_abbrev=False,
    )
    top.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help=(
            "Output verbose logs. Can be given multiple times to increase the verbosity. "
            "By default only critical messages are output."
        ),
    )
    top.add_argument("--version", action="version", version=rdlgen.__version__)

    sub = top.add_subparsers(title="subcommands")

    gen = sub.add_parser(
        "generate",
        help="Generate code from base and overlay register descriptions.",
        description=dedent(
            """\
            Load the register descriptions in RTL_DIR, apply the overlays in OVERLAY_DIR,
            validate the result and write the generated code to OUTPUT_DIR.
            """
        ),
        allow_abbrev=False,
    )
    gen.set_defaults(_command="generate")

    gen.add_argument("rtl_dir", metavar="RTL_DIR", type=Path, help="Base descriptions.")
    gen.add_argument(
        "overlay_dir", metavar="OVERLAY_DIR", type=Path, help="Overlay descriptions."
    )
    gen.add_argument(
        "output_dir", metavar="OUTPUT_DIR", type=Path, help="Where to write the code."
    )

    gen_opt = gen.add_argument_group("generation options")
    gen_opt.add_argument(
        "-t",
        "--target",
        dest="targets",
        choices=list(TARGETS),
        action="append",
        help="Code generation target. May be given multiple times. Defaults to rust.",
    )
    gen_opt.add_argument(
        "-j",
        "--jobs",
        type=int,
        help="Number of worker threads to use.",
    )
    gen_opt.add_argument(
        "--name",
        help="Name of the address space, used in the generated code.",
    )
    gen_opt.add_argument(
        "--options",
        type=json.loads,
        help=(
            "JSON object used to override fields in the Options object to customize the "
            "generation behavior, for example '{\"ignore_overlapping_structures\": true}'."
        ),
    )

    gen_sel = gen.add_argument_group("selection options")
    gen_sel.add_argument(
        "-p",
        "--peripheral",
        metavar="NAME",
        dest="peripherals",
        action="append",
        help="Limit output to the given peripheral. May be given multiple times.",
    )
    gen_sel.add_argument(
        "-a",
        "--address-range",
        metavar=("START", "END"),
        nargs=2,
        type=integer,
        help="Limit output to a specific address range. Addresses can be given as hex or decimal.",
    )

    args = top.parse_args()

    log_level = {
        0: logging.CRITICAL,
        1: logging.WARNING,
        2: logging.INFO,
        3: logging.DEBUG,
    }.get(args.verbose, logging.DEBUG)
    rdlgen.log.setLevel(log_level)

    if not hasattr(args, "_command"):
        top.print_usage()
        sys.exit(2)

    if args._command == "generate":
        status = cmd_generate(args)
    else:
        top.print_usage()
        sys.exit(2)

    sys.exit(status)


def integer(val: str) -> int:
    return int(val, 0)


def options_from_args(args: argparse.Namespace) -> rdlgen.Options:
    options = rdlgen.Options()
    if args.options:
        overrides = {
            k: tuple(v) if isinstance(v, list) else v for k, v in args.options.items()
        }
        options = dataclasses.replace(options, **overrides)
    if args.targets:
        options = dataclasses.replace(options, targets=tuple(args.targets))
    if args.jobs is not None:
        options = dataclasses.replace(options, jobs=args.jobs)
    if args.name:
        options = dataclasses.replace(options, name=args.name)
    return options


def cmd_generate(args: argparse.Namespace) -> int:
    try:
        options = options_from_args(args)
    except (AttributeError, TypeError, ValueError) as e:
        print(f"error: invalid --options: {e}", file=sys.stderr)
        return 2

    selector = Selector(
        peripherals=tuple(args.peripherals) if args.peripherals else None,
        address_range=tuple(args.address_range) if args.address_range else None,
    )

    try:
        result = rdlgen.generate(
            args.rtl_dir, args.overlay_dir, args.output_dir, options=options, selector=selector
        )
    except rdlgen.RdlGenerationError as e:
        print(e.report.format(), file=sys.stderr)
        return 1

    if result.report.issues:
        print(result.report.format(), file=sys.stderr)

    for path in result.written:
        print(path)

    return 0


# Entry point when running with python -m rdlgen
if __name__ == "__main__":
    cli()
