"""Command-line entry point: ``memopass SOURCE.py [SOURCE.py ...]``."""

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from .config import PassConfig, load_config
from .errors import FrontendError, VerificationError
from .frontend.python_lowering import lower_file
from .ir.printer import format_module
from .metadata import MemoTable
from .pass_driver import MemoizePass

logger = logging.getLogger(__name__)


def build_argparser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog='memopass',
        description='Compile-time function memoization for annotated Python modules',
    )
    p.add_argument('sources', nargs='+', metavar='SOURCE', help='Python source file(s) to lower')
    p.add_argument('--config', help='JSON file with pass configuration')
    p.add_argument('--max-depth', type=int, help='call depth budget of the eligibility analysis')
    p.add_argument('--prefix', help='name prefix of memoized variants')
    p.add_argument('--no-widening', action='store_true',
                   help='reject call sites that need a widening cast')
    p.add_argument('--no-verify', action='store_true', help='skip the module verifier')
    p.add_argument('--metadata', metavar='PATH', help='write variant records as JSON')
    p.add_argument('--emit-llvm', metavar='PATH',
                   help="write LLVM IR ('-' for stdout; a directory for several sources)")
    p.add_argument('--print-ir', action='store_true', help='print the transformed IR')
    p.add_argument('-j', '--jobs', type=int, help='modules processed in parallel')
    p.add_argument('-v', '--verbose', action='count', default=0,
                   help='log pass decisions (-vv for debug)')
    return p


def _configure(args: argparse.Namespace) -> PassConfig:
    config = load_config(args.config) if args.config else PassConfig()
    return config.with_overrides(
        max_depth=args.max_depth,
        variant_prefix=args.prefix,
        allow_widening_casts=False if args.no_widening else None,
        verify=False if args.no_verify else None,
    )


def _write_llvm(target: str, modules) -> None:
    # llvmlite is only needed when LLVM output is requested
    from .backend.llvm_emitter import emit_llvm

    if target == '-':
        for module in modules:
            sys.stdout.write(emit_llvm(module))
        return
    if len(modules) == 1:
        Path(target).write_text(emit_llvm(modules[0]), encoding='utf-8')
        return
    out_dir = Path(target)
    out_dir.mkdir(parents=True, exist_ok=True)
    for module in modules:
        (out_dir / f"{module.name}.ll").write_text(emit_llvm(module), encoding='utf-8')


def _lower(source: str):
    try:
        return lower_file(source)
    except FrontendError as exc:
        raise FrontendError(f"{source}: {exc}") from exc


def main(argv: Optional[List[str]] = None) -> int:
    args = build_argparser().parse_args(argv)
    level = logging.WARNING
    if args.verbose == 1:
        level = logging.INFO
    elif args.verbose > 1:
        level = logging.DEBUG
    logging.basicConfig(level=level, format='%(levelname)s %(name)s: %(message)s')

    try:
        config = _configure(args)
        logger.debug("Configuration: %s", config.to_dict())
        modules = [_lower(source) for source in args.sources]
        table = MemoTable()
        results = MemoizePass(config, sink=table).run_many(modules, workers=args.jobs)
    except (FrontendError, OSError, ValueError) as exc:
        print(f"memopass: error: {exc}", file=sys.stderr)
        return 1
    except VerificationError as exc:
        print(f"memopass: internal error: {exc}", file=sys.stderr)
        return 2

    for module, result in zip(modules, results):
        print(f"; {module.name}")
        for diagnostic in result.diagnostics:
            print(f";   {diagnostic}")
        if args.print_ir:
            print(format_module(module))

    try:
        if args.metadata:
            table.write(args.metadata)
            logger.info("Wrote %d variant record(s) to %s", len(table), args.metadata)
        if args.emit_llvm:
            _write_llvm(args.emit_llvm, modules)
            logger.info("Wrote LLVM IR to %s", args.emit_llvm)
    except OSError as exc:
        print(f"memopass: error: {exc}", file=sys.stderr)
        return 1
    return 0


if __name__ == '__main__':
    sys.exit(main())
