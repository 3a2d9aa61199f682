import argparse
import json
import logging
import os
import sys
from collections import Counter
from typing import Dict, List, Optional, Tuple

from phpunveil.analysis import Listing, ReferenceAnalyzer
from phpunveil.detection import detect_arrays, detect_encoded_strings, detect_functions
from phpunveil.errors import ConfigurationError
from phpunveil.evaluator import evaluate_expressions
from phpunveil.literals import (
    decode_base64_strings,
    decode_chr_calls,
    decode_compressed_strings,
    decode_hex_strings,
    decode_rot13_strings,
)
from phpunveil.log import LEVELS, configure_logging, get_logger
from phpunveil.normalizer import normalize
from phpunveil.resolvers import Environment, resolve_array, resolve_function
from phpunveil.stats import StatsCollector
from phpunveil.variables import detect_variables, substitute_variables

DEFAULT_MAX_PASSES = 5

logger = get_logger("cli")


class Decoder:
    """Multi-pass detect-and-rewrite engine for one obfuscated PHP buffer.

    Each pass re-detects arrays, helper-function calls and literal variable
    assignments, then runs the stages of :meth:`_processing_pipeline` in
    order. Decoding stops once a pass leaves the buffer unchanged or the pass
    budget runs out. A failing stage keeps its input, so ``decode`` never
    raises.
    """

    def __init__(self, code: str, environment: Optional[Environment] = None) -> None:
        self.original = code
        self.code = code
        self.environment = environment or Environment()
        self.stats = StatsCollector(code)
        self.analyzer = ReferenceAnalyzer()
        self.arrays: Dict[str, set] = {}
        self.functions: Counter = Counter()
        self.variables: Dict[str, str] = {}
        self.trace: List[str] = []
        self.logger = get_logger("decoder")
        self._log("Initializing decoder")

    def _log(self, message: str, level: str = "info") -> None:
        # debug chatter goes to the logger only, not to the trace
        if level != "debug":
            self.trace.append(message)
        self.logger.log(LEVELS.get(level, logging.INFO), message)

    def decode(self, max_passes: int = DEFAULT_MAX_PASSES) -> str:
        self.stats = StatsCollector(self.original)
        self.stats.start()
        self.code = self.original
        self._log("Starting decoding")

        previous = None
        for pass_number in range(1, max_passes + 1):
            self._log(f"Pass #{pass_number}...")
            if self.code == previous:
                self._log(f"Content stabilized at pass #{pass_number}")
                break
            previous = self.code
            self.stats.increment("passes")
            for step in self._processing_pipeline():
                self._execute_step(step)
        else:
            if self.code != previous:
                self._log(f"Pass limit of {max_passes} reached before the content stabilized", "warning")

        self.stats.finish(self.code)
        self.analyzer.build_graph(self.arrays, self.functions, self.variables)
        self._log(f"Decoding finished in {self.stats.values['processing_time_ms']} ms")
        return self.code

    def _processing_pipeline(self) -> List[tuple]:
        return [
            (self.detect_all_patterns, "Pattern detection"),
            (lambda c: decode_compressed_strings(c, self.stats), "Compressed payload decoding"),
            (lambda c: decode_base64_strings(c, self.stats), "Base64 decoding"),
            (lambda c: decode_hex_strings(c, self.stats), "Hex escape decoding"),
            (lambda c: decode_chr_calls(c, self.stats), "chr() decoding"),
            (lambda c: decode_rot13_strings(c, self.stats), "str_rot13 decoding"),
            (self.process_arrays, "Array resolution"),
            (self.process_functions, "Function resolution"),
            (lambda c: substitute_variables(c, self.variables), "Variable substitution"),
            (lambda c: evaluate_expressions(c, self.stats), "Expression evaluation"),
            (normalize, "Normalization"),
        ]

    def _execute_step(self, step: tuple) -> bool:
        func, description = step
        self._log(f"Starting: {description}", "debug")

        try:
            self.code = func(self.code)
            return True
        except Exception as e:
            self._log(f"Error in {description}: {str(e)}", "error")
            return False

    def detect_all_patterns(self, code: str) -> str:
        self.arrays = detect_arrays(code)
        self.stats.set("arrays_found", len(self.arrays))
        self._log(f"Arrays detected: {len(self.arrays)}")

        self.functions = detect_functions(code)
        self.stats.set("functions_found", len(self.functions))
        if self.functions:
            self._log(f"Functions found: {', '.join(self.functions)}")

        self.variables = detect_variables(code)
        self.stats.set("variables_found", len(self.variables))
        self._log(f"Variables detected: {len(self.variables)}")

        for kind, count in detect_encoded_strings(code).items():
            self._log(f"Found {kind} strings: {count}")
        return code

    def process_arrays(self, code: str) -> str:
        for name in self.arrays:
            self._log(f"Processing array: {name}")
            code = resolve_array(code, name, self.environment.globals)
        return code

    def process_functions(self, code: str) -> str:
        for name in self.functions:
            self._log(f"Processing function: {name}")
            code = resolve_function(code, name, self.environment.functions)
        return code

    @property
    def statistics(self) -> Dict[str, object]:
        return self.stats.snapshot()

    @property
    def detected_arrays(self) -> Dict[str, List[int]]:
        return {name: sorted(indices) for name, indices in self.arrays.items()}

    @property
    def detected_functions(self) -> List[str]:
        return list(self.functions)

    @property
    def detected_variables(self) -> Dict[str, str]:
        return dict(self.variables)

    def listings(self) -> List[Listing]:
        return self.analyzer.listings()

    @property
    def log_trace(self) -> Tuple[str, ...]:
        return tuple(self.trace)

    @property
    def console_output(self) -> str:
        return "".join(f"{line}\n" for line in self.trace)


def load_environment(path: Optional[str]) -> Environment:
    if not path:
        return Environment()
    with open(path, "r", encoding="utf-8") as f:
        return Environment.from_dict(json.load(f))


def default_output_path(input_path: str) -> str:
    root, ext = os.path.splitext(input_path)
    return f"{root}_deobf{ext or '.php'}"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="unveil", description="Replace encoded PHP literals and indirect lookups with their values."
    )
    parser.add_argument("input", help="obfuscated PHP file")
    parser.add_argument("-o", "--output", help="decoded file (default: <input>_deobf.php)")
    parser.add_argument("--env", help="JSON file with 'globals' and 'functions' lookup tables")
    parser.add_argument("--max-passes", type=int, default=DEFAULT_MAX_PASSES)
    parser.add_argument("--report", action="store_true", help="print statistics and detected entities")
    parser.add_argument("--json", action="store_true", help="print statistics and entities as JSON")
    verbosity = parser.add_mutually_exclusive_group()
    verbosity.add_argument("-v", "--verbose", action="store_true")
    verbosity.add_argument("-q", "--quiet", action="store_true")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging("debug" if args.verbose else "warning" if args.quiet else "info")

    try:
        with open(args.input, "r", encoding="utf-8", errors="surrogateescape") as f:
            code = f.read()
        environment = load_environment(args.env)
    except (OSError, ValueError, ConfigurationError) as e:
        logger.error(f"Cannot start decoding: {e}")
        return 1

    decoder = Decoder(code, environment)
    decoded = decoder.decode(args.max_passes)

    output_name = args.output or default_output_path(args.input)
    try:
        with open(output_name, "w", encoding="utf-8", errors="surrogateescape") as f:
            f.write(decoded)
    except OSError as e:
        logger.error(f"Error writing output: {e}")
        return 1
    logger.info(f"Decoded source written to {output_name}")

    if args.json:
        print(
            json.dumps(
                {
                    "statistics": decoder.statistics,
                    "arrays": decoder.detected_arrays,
                    "functions": decoder.detected_functions,
                    "variables": decoder.detected_variables,
                },
                indent=2,
                ensure_ascii=False,
            )
        )
    elif args.report:
        print(decoder.analyzer.report(decoder.statistics))
    return 0


if __name__ == "__main__":
    sys.exit(main())
