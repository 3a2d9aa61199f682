import time
from typing import Dict

COUNTERS = (
    "arrays_found",
    "functions_found",
    "variables_found",
    "base64_decoded",
    "hex_decoded",
    "chr_decoded",
    "rot13_decoded",
    "gzinflate_decoded",
    "math_expressions",
    "passes",
)


def byte_size(text: str) -> int:
    return len(text.encode("utf-8", "surrogateescape"))


class StatsCollector:
    def __init__(self, original: str) -> None:
        self.values: Dict[str, object] = {"original_size": byte_size(original)}
        self.values.update({name: 0 for name in COUNTERS})
        self.values.update(final_size=0, processing_time_ms=0.0, compression_ratio=0.0)
        self._started = None

    def increment(self, counter: str, amount: int = 1) -> None:
        self.values[counter] += amount

    def set(self, counter: str, value: int) -> None:
        self.values[counter] = value

    def start(self) -> None:
        self._started = time.perf_counter()

    def finish(self, final: str) -> None:
        elapsed = time.perf_counter() - (self._started or time.perf_counter())
        original = self.values["original_size"]
        final_size = byte_size(final)
        self.values["final_size"] = final_size
        self.values["processing_time_ms"] = round(elapsed * 1000, 2)
        self.values["compression_ratio"] = (
            round((1 - final_size / original) * 100, 2) if original else 0.0
        )

    def snapshot(self) -> Dict[str, object]:
        return dict(self.values)
