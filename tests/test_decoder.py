import pytest

import unveil
from phpunveil.resolvers import Environment
from unveil import Decoder


def test_end_to_end_base64_assignment():
    decoder = Decoder("$x = base64_decode('aGVsbG8=');")
    assert decoder.decode() == "$x = 'hello';"
    assert decoder.statistics["base64_decoded"] == 1


@pytest.mark.parametrize(
    "source, expected",
    [
        ("echo chr(72);", "echo 'H';"),
        ("echo str_rot13('uryyb');", "echo 'hello';"),
        ("echo (10+5);", "echo 15;"),
        ("echo round(3.14159);", "echo 3;"),
        ("echo round($x);", "echo round($x);"),
        ("$name = 'secret';\n\necho $name;", "$name = 'secret'; echo 'secret';"),
    ],
)
def test_single_constructs(source, expected):
    assert Decoder(source).decode() == expected


def test_missing_global_is_kept_but_counted():
    decoder = Decoder("echo $GLOBALS['_0x1'][3];")
    assert decoder.decode() == "echo $GLOBALS['_0x1'][3];"
    assert decoder.statistics["arrays_found"] == 1
    assert decoder.detected_arrays == {"_0x1": [3]}
    assert ("array", "_0x1", 1) in decoder.listings()


def test_globals_and_helper_functions_resolve():
    env = Environment(
        arrays={"_a": ["Hello", "World"]},
        functions={"_F": lambda n: ["zero", "one"][n]},
    )
    decoder = Decoder("echo $GLOBALS['_a'][0] . $GLOBALS['_a'][1] . _F(1);", env)
    assert decoder.decode() == "echo 'Hello' . 'World' . 'one';"
    assert "Processing array: _a" in decoder.log_trace
    assert "Processing function: _F" in decoder.log_trace


def test_statistics_match_measured_sizes():
    source = (
        "<?php $a = base64_decode('aGk='); $b = \"\\x41\"; "
        "$c = chr(66); $d = str_rot13('uryyb');"
    )
    decoder = Decoder(source)
    output = decoder.decode()
    assert output == "<?php\n$a = 'hi'; $b = \"A\"; $c = 'B'; $d = 'hello';"

    stats = decoder.statistics
    for counter in ("base64_decoded", "hex_decoded", "chr_decoded", "rot13_decoded"):
        assert stats[counter] == 1
    assert stats["variables_found"] == 4
    assert stats["original_size"] == len(source.encode("utf-8"))
    assert stats["final_size"] == len(output.encode("utf-8"))
    assert stats["compression_ratio"] == round((1 - len(output) / len(source)) * 100, 2)


def test_pass_budget_is_respected():
    source = "$k = str_rot13('uryyb'); echo $k;"
    decoder = Decoder(source)
    assert decoder.decode(max_passes=1) == "$k = 'hello'; echo $k;"
    assert decoder.statistics["passes"] == 1
    assert any("Pass limit of 1 reached" in line for line in decoder.log_trace)

    decoder = Decoder(source)
    assert decoder.decode() == "$k = 'hello'; echo 'hello';"
    assert decoder.statistics["passes"] <= unveil.DEFAULT_MAX_PASSES
    assert any(line.startswith("Content stabilized") for line in decoder.log_trace)


def test_zero_passes_returns_input():
    decoder = Decoder("echo chr(72);")
    assert decoder.decode(max_passes=0) == "echo chr(72);"
    assert decoder.statistics["passes"] == 0


@pytest.mark.parametrize(
    "source",
    [
        "<?php $x = base64_decode('aGVsbG8='); echo $x . chr(33);",
        "$k = str_rot13('uryyb');   echo $k;; echo (2*21);",
        "echo $GLOBALS['_a'][0] . _F(0);",
    ],
)
def test_decoding_output_is_stable(source):
    env = Environment(arrays={"_a": ["x"]}, functions={"_F": lambda n: "y"})
    once = Decoder(source, env).decode()
    assert Decoder(once, env).decode() == once


def test_failing_stage_does_not_abort_decoding(monkeypatch):
    def boom(code):
        raise RuntimeError("boom")

    monkeypatch.setattr(unveil, "normalize", boom)
    decoder = Decoder("echo  chr(72);")
    assert decoder.decode() == "echo  'H';"
    assert "Error in Normalization: boom" in decoder.log_trace


def test_empty_input():
    decoder = Decoder("")
    assert decoder.decode() == ""
    assert decoder.statistics["compression_ratio"] == 0.0


def test_console_output_joins_the_trace():
    decoder = Decoder("echo 1;")
    decoder.decode()
    assert decoder.console_output.splitlines() == list(decoder.log_trace)
    assert decoder.log_trace[0] == "Initializing decoder"
