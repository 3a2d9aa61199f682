import base64
import zlib

import pytest

from phpunveil.catalog import CATALOG
from phpunveil.literals import (
    decode_base64_strings,
    decode_chr_calls,
    decode_compressed_strings,
    decode_hex_strings,
    decode_rot13_strings,
)


def test_base64_call_becomes_quoted_literal(stats):
    code = "$x = base64_decode('aGVsbG8=');"
    assert decode_base64_strings(code, stats) == "$x = 'hello';"
    assert stats.values["base64_decoded"] == 1


def test_base64_without_padding_is_accepted():
    assert decode_base64_strings('echo base64_decode("aGVsbG8");') == "echo 'hello';"


def test_base64_result_is_escaped():
    payload = base64.b64encode("it's".encode("utf-8")).decode("ascii")
    assert decode_base64_strings(f"base64_decode('{payload}')") == "'it\\'s'"


def test_base64_with_invalid_text_is_left_alone(stats):
    code = "base64_decode('//4=')"
    assert decode_base64_strings(code, stats) == code
    assert stats.values["base64_decoded"] == 0


def test_hex_escape_emits_bare_character(stats):
    assert decode_hex_strings('echo "\\x48\\x69";', stats) == 'echo "Hi";'
    assert stats.values["hex_decoded"] == 2


def test_hex_run_is_decoded_as_utf8_bytes(stats):
    assert decode_hex_strings('echo "\\xd0\\x9f";', stats) == 'echo "\u041f";'
    assert stats.values["hex_decoded"] == 2


def test_hex_run_that_is_not_utf8_keeps_its_bytes():
    decoded = decode_hex_strings('"\\xcf\\xf0\\xe8"')
    assert decoded.encode("utf-8", "surrogateescape") == b'"\xcf\xf0\xe8"'


@pytest.mark.parametrize(
    "code, expected",
    [
        ("chr(72)", "'H'"),
        ("chr( 39 )", "'\\''"),
        ("chr(328)", "'H'"),
        ("chr(208)", "'\udcd0'"),
        ("$o->chr(72)", "$o->chr(72)"),
    ],
)
def test_chr_calls(code, expected):
    assert decode_chr_calls(code) == expected


def test_chr_pair_writes_back_as_utf8():
    decoded = decode_chr_calls("chr(208).chr(159)")
    assert decoded.replace("'.'", "").encode("utf-8", "surrogateescape") == "'\u041f'".encode("utf-8")


def test_rot13_call(stats):
    assert decode_rot13_strings("str_rot13('uryyb')", stats) == "'hello'"
    assert stats.values["rot13_decoded"] == 1


def test_gzinflate_payload(stats):
    compressor = zlib.compressobj(wbits=-zlib.MAX_WBITS)
    raw = compressor.compress(b"hello world") + compressor.flush()
    payload = base64.b64encode(raw).decode("ascii")
    code = f"eval(gzinflate(base64_decode('{payload}')));"
    assert decode_compressed_strings(code, stats) == "eval('hello world');"
    assert stats.values["gzinflate_decoded"] == 1
    assert stats.values["base64_decoded"] == 0


def test_gzuncompress_payload():
    payload = base64.b64encode(zlib.compress(b"<?php echo 1;")).decode("ascii")
    code = f'gzuncompress(base64_decode("{payload}"))'
    assert decode_compressed_strings(code) == "'<?php echo 1;'"


def test_corrupt_compressed_payload_is_left_alone(stats):
    code = "gzinflate(base64_decode('aGVsbG8='))"
    assert decode_compressed_strings(code, stats) == code
    assert stats.values["gzinflate_decoded"] == 0


def test_catalog_counts_every_kind_it_knows():
    counts = CATALOG.count("eval(base64_decode('aGk=')); echo chr(65), chr(66);")
    assert counts == {"base64": 1, "chr": 2, "eval": 1}


def test_catalog_refuses_duplicate_kinds():
    with pytest.raises(ValueError):
        CATALOG.add("hex", r"x")
