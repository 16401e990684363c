"""
batch.py: Run the image determination over a file of curves.

    python -m mod5image.batch --lattice lattice.json --curves curves.txt
           [--bound N] [--log errors.log] [--overwrite] [--counter CMD]
           [--no-analytic] [--stats stats.json] [--debug]

Each non-empty line of the curves file is a database entry understood by
parse_curve_entry. One verdict line is printed per curve.
"""
import argparse
import sys

from colorama import init as colorama_init

from .image_config import DEFAULT_PRIME_BOUND, LatticeDataError, Fore, Style, default_config
from .lattice import load_lattice
from .invariants import build_dictionary
from .curve_data import parse_curve_entry
from .frobenius import SagePointCounter, SubprocessPointCounter
from .pipeline import run_batch
from .errlog import ErrorLog


def read_curves(path, log):
    curves = []
    with open(path, "r") as fh:
        for lineno, line in enumerate(fh, start=1):
            line = line.strip()
            if not line or line.startswith('#'):
                continue
            try:
                curves.append(parse_curve_entry(line))
            except (ValueError, TypeError, ArithmeticError) as e:
                log.write("parse", f"{path}:{lineno}: {e}")
    return curves


def build_parser():
    parser = argparse.ArgumentParser(description="Mod-5 Galois images of genus-2 Jacobians")
    parser.add_argument("--lattice", required=True, help="subgroup lattice JSON file")
    parser.add_argument("--curves", required=True, help="one curve entry per line")
    parser.add_argument("--bound", type=int, default=DEFAULT_PRIME_BOUND, help="prime bound for sampling")
    parser.add_argument("--log", default=None, help="error log file")
    parser.add_argument("--overwrite", action="store_true", help="truncate the error log instead of appending")
    parser.add_argument("--counter", default=None,
                        help="external point counter command, with {poly} and {bound} placeholders")
    parser.add_argument("--counter-output", default="lpdata.txt", help="file written by the point counter")
    parser.add_argument("--no-analytic", action="store_true", help="skip the Abel-Jacobi torsion search")
    parser.add_argument("--stats", default=None, help="write batch statistics as JSON")
    parser.add_argument("--debug", action="store_true")
    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)
    colorama_init()

    conf = default_config(PRIME_BOUND=args.bound, ANALYTIC_SEARCH=not args.no_analytic, DEBUG=args.debug)
    with ErrorLog(args.log, mode='w' if args.overwrite else 'a', echo=args.debug) as log:
        try:
            lattice = load_lattice(args.lattice)
        except (OSError, LatticeDataError) as e:
            print(f"{Fore.RED}Could not load lattice: {e}{Style.RESET_ALL}")
            return 1
        dictionary = build_dictionary(lattice)
        curves = read_curves(args.curves, log)
        print(f"--- {len(curves)} curves, {len(lattice)} subgroups, primes below {args.bound} ---")

        if args.counter:
            counter = SubprocessPointCounter(args.counter, output_file=args.counter_output)
        else:
            counter = SagePointCounter()

        results, totals = run_batch(curves, lattice, dictionary, counter, conf, log=log)
        print(totals.summary_string())
        if args.stats:
            totals.to_json(args.stats)
        if log.count:
            print(f"{Fore.YELLOW}{log.count} messages written to the error log{Style.RESET_ALL}")
    return 0 if len(results) == len(curves) else 2


if __name__ == "__main__":
    sys.exit(main())
