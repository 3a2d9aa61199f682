from phpunveil.variables import detect_variables, substitute_variables


def test_later_assignments_overwrite_earlier_ones():
    code = "$a = 'x'; $b = \"y\"; $a = 'z';"
    assert detect_variables(code) == {"a": "z", "b": "y"}


def test_only_plain_literals_bind():
    code = "$c = \"hi $d\"; $e = $f; $g = 'esc\\'aped'; $$h = 'x';"
    assert detect_variables(code) == {}


def test_uses_are_replaced_but_assignments_survive():
    code = "$name = 'secret'; echo $name;"
    bindings = detect_variables(code)
    assert substitute_variables(code, bindings) == "$name = 'secret'; echo 'secret';"


def test_substitution_is_whole_word_and_skips_compound_assignment():
    code = "$name .= 'x'; if ($name == 'y') { echo $name2; }"
    result = substitute_variables(code, {"name": "secret"})
    assert result == "$name .= 'x'; if ('secret' == 'y') { echo $name2; }"
