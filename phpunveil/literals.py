import base64
import codecs
import re
import zlib
from typing import Optional

from phpunveil.catalog import CATALOG
from phpunveil.log import get_logger
from phpunveil.stats import StatsCollector
from phpunveil.utils import quote_literal

logger = get_logger("literals")


def _b64decode(data: str) -> bytes:
    # PHP accepts unpadded input
    stripped = data.rstrip("=")
    return base64.b64decode(stripped + "=" * (-len(stripped) % 4), validate=True)


@CATALOG.handler("gzinflate")
def _inflate(match: re.Match) -> Optional[str]:
    wbits = -zlib.MAX_WBITS if match.group(1) == "gzinflate" else zlib.MAX_WBITS
    payload = zlib.decompress(_b64decode(match.group(3)), wbits)
    return quote_literal(payload.decode("utf-8"))


@CATALOG.handler("base64")
def _base64(match: re.Match) -> Optional[str]:
    try:
        text = _b64decode(match.group(2)).decode("utf-8")
    except UnicodeDecodeError:
        return None
    return quote_literal(text)


HEX_ESCAPE = re.compile(r"\\x([0-9a-fA-F]{2})")


def _bytes_to_text(data: bytes) -> str:
    # Bytes that are not UTF-8 become lone surrogates and are written back unchanged.
    return data.decode("utf-8", "surrogateescape")


@CATALOG.handler("hex")
def _hex(match: re.Match) -> str:
    # bare text: the escapes already sit inside a quoted string
    return _bytes_to_text(bytes(int(pair, 16) for pair in HEX_ESCAPE.findall(match.group(0))))


@CATALOG.handler("chr")
def _chr(match: re.Match) -> str:
    return quote_literal(_bytes_to_text(bytes([int(match.group(1)) % 256])))


@CATALOG.handler("str_rot13")
def _rot13(match: re.Match) -> str:
    return quote_literal(codecs.encode(match.group(2), "rot13"))


def apply_rule(kind: str, code: str, stats: Optional[StatsCollector] = None) -> str:
    """Rewrite every match of one catalog kind, leaving failed matches untouched."""
    rule = CATALOG[kind]

    def replace(match: re.Match) -> str:
        try:
            result = rule.handler(match)
        except Exception as e:
            logger.debug(f"{kind} decoding failed for {match.group(0)[:40]!r}: {e}")
            return match.group(0)
        if result is None:
            return match.group(0)
        if stats is not None and rule.counter:
            stats.increment(rule.counter, rule.units(match))
        return result

    return rule.pattern.sub(replace, code)


def decode_compressed_strings(code: str, stats: Optional[StatsCollector] = None) -> str:
    return apply_rule("gzinflate", code, stats)


def decode_base64_strings(code: str, stats: Optional[StatsCollector] = None) -> str:
    return apply_rule("base64", code, stats)


def decode_hex_strings(code: str, stats: Optional[StatsCollector] = None) -> str:
    return apply_rule("hex", code, stats)


def decode_chr_calls(code: str, stats: Optional[StatsCollector] = None) -> str:
    return apply_rule("chr", code, stats)


def decode_rot13_strings(code: str, stats: Optional[StatsCollector] = None) -> str:
    return apply_rule("str_rot13", code, stats)
