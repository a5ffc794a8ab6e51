import json

import pytest

from interpreter import CUSTOM_STANDARD, Interpreter, TracebackFormatter
from lexer import KIND_BOUNDS, KIND_INTERNAL, KIND_IO, KIND_STRUCTURE, BPParseError
from tape import BPRuntimeError, LanguageStandard, Tape


def make(inputs=(), **kwargs):
    lines = iter(inputs)
    output = []

    def provider():
        try:
            return next(lines)
        except StopIteration:
            raise EOFError

    interpreter = Interpreter(input_provider=provider, output_sink=output.append, **kwargs)
    return interpreter, output


def run(source, inputs=(), **kwargs):
    interpreter, output = make(inputs, **kwargs)
    interpreter.run(source)
    return "".join(output)


def test_character_output():
    assert run("={'h'}.{'c'}") == "h"


def test_decimal_output():
    assert run("={72}.{}") == "72"
    assert run("={72}.") == "72"


def test_greeting():
    assert run("={'h'}.{'c'}={'i'}.{'c'}={'!'}.{'c'}={10}.{'c'}") == "hi!\n"


def test_default_operands():
    interpreter, _ = make()
    interpreter.run("=")
    assert interpreter.tape.read() == ord("0")
    interpreter.run("+")
    assert interpreter.tape.read() == ord("0") + 1
    interpreter.run("^")
    assert interpreter.tape.pointer == ord("0")
    interpreter.run(">>><")
    assert interpreter.tape.pointer == ord("0") + 2


def test_numeric_99_is_not_char_mode():
    assert run("={99}.{99}") == "99"


def test_loop_moves_cell_zero_onto_cell_one():
    interpreter, output = make()
    interpreter.run("^{0}={3}^{1}={4}")
    interpreter.run("^{0}[>+<-]>.")
    assert "".join(output) == "7"
    assert interpreter.tape.pointer == 1
    assert interpreter.tape.cells[0] == 0


def test_nested_loops():
    assert run("={2}[>={3}[>+<-]<-]>>.") == "6"


def test_loop_body_runs_before_first_check():
    # The cell starts at zero, so the body runs until the cell wraps back round.
    interpreter, output = make()
    interpreter.run("[+].")
    assert "".join(output) == "0"
    assert interpreter.logger.next_step_index > 256


def test_loop_jump_targets_recorded_in_trace():
    interpreter, _ = make(verbose=True)
    interpreter.run("={2}[-]")
    assert [entry.token_index for entry in interpreter.logger.entries] == [0, 2, 3, 4, 3, 4]


def test_operand_on_loop_end_does_not_skip_body():
    assert run("={2}[-]{7}.") == "0"


def test_operand_on_loop_end_keeps_first_body_token():
    assert run("={2}[.-]{9}") == "21"


def test_stray_value_is_ignored():
    assert run("{5}+.") == "1"


def test_unmatched_loop_end():
    interpreter, output = make()
    with pytest.raises(BPRuntimeError) as info:
        interpreter.run("={65}.{'c'}]={66}.{'c'}")
    assert info.value.kind == KIND_STRUCTURE
    assert info.value.message == "Found ending block without matching starting block."
    assert info.value.token_index == 4
    assert info.value.offset == 11
    assert "".join(output) == "A"


def test_parse_error_runs_nothing():
    interpreter, output = make()
    with pytest.raises(BPParseError):
        interpreter.run("={65}.{'c'}{bad}")
    assert output == []


def test_integer_input():
    assert run(",.", inputs=["42"]) == "42"
    assert run(",.", inputs=["  -17  "]) == "239"
    assert run(",.", inputs=["-17"], standard=LanguageStandard.extbp()) == "-17"


def test_character_input_takes_first_character_of_word():
    assert run(",{'c'}.", inputs=["hello world"]) == "104"


def test_input_reads_whitespace_separated_words():
    interpreter, _ = make(inputs=["3 4"])
    interpreter.run(",>,")
    assert list(interpreter.tape.cells[:2]) == [3, 4]


def test_input_skips_blank_lines():
    assert run(",.", inputs=["", "   ", "8"]) == "8"


def test_input_exhausted():
    interpreter, _ = make()
    with pytest.raises(BPRuntimeError) as info:
        interpreter.run(",")
    assert info.value.kind == KIND_IO


def test_input_not_an_integer():
    interpreter, _ = make(inputs=["abc"])
    with pytest.raises(BPRuntimeError) as info:
        interpreter.run(",")
    assert info.value.kind == KIND_IO
    assert "abc" in info.value.message


def test_input_outside_64_bits():
    for text in ("99999999999999999999", "-9223372036854775809"):
        interpreter, output = make(inputs=[text])
        with pytest.raises(BPRuntimeError) as info:
            interpreter.run(",.")
        assert info.value.kind == KIND_IO
        assert text in info.value.message
        assert output == []
    assert run(",.", inputs=["9223372036854775807"], standard=LanguageStandard.extbp()) == "9223372036854775807"


def test_tape_persists_between_runs():
    interpreter, output = make()
    interpreter.run("+++")
    interpreter.run(".")
    assert "".join(output) == "3"


def test_saved_tape_can_be_restored():
    interpreter, output = make()
    interpreter.run("={9}")
    saved = interpreter.tape.snapshot()
    interpreter.tape.clear()
    interpreter.run(".")
    interpreter.tape.restore(saved)
    interpreter.run(".")
    assert "".join(output) == "09"


def test_pointer_wraps_under_tacobell():
    interpreter, _ = make()
    interpreter.run("<={7}")
    assert interpreter.tape.pointer == 29999
    assert interpreter.tape.cells[29999] == 7


def test_pointer_bounds_error_without_wrap():
    tape = Tape(5, wrap_pointer=False)
    interpreter, _ = make(tape=tape)
    assert interpreter.language_standard == CUSTOM_STANDARD
    with pytest.raises(BPRuntimeError) as info:
        interpreter.run("+<")
    assert info.value.kind == KIND_BOUNDS
    assert info.value.token_index == 1
    assert info.value.offset == 1


def test_cell_wrap_under_tacobell_and_extbp():
    assert run("={256}.") == "0"
    assert run("={256}.", standard=LanguageStandard.extbp()) == "256"
    assert run("-.") == "255"


def test_character_output_reduces_modulo_255():
    tape = Tape(4, cell_min=-1000, cell_max=1000)
    assert run("={300}.{'c'}", tape=tape) == "-"


def test_set_language_standard():
    interpreter, _ = make()
    assert interpreter.set_language_standard(" EXTBP")
    assert interpreter.language_standard == "extbp"
    assert interpreter.tape.length == 100000
    assert interpreter.cell_min == -(2**63)
    assert interpreter.wrapping and interpreter.pointer_wrapping


def test_unknown_language_standard_changes_nothing():
    interpreter, _ = make(standard=LanguageStandard.bp())
    interpreter.tape.wrap_cells = False
    interpreter.tape.set_cell_bounds(-5, 5)
    before = (
        interpreter.language_standard,
        interpreter.tape.length,
        interpreter.cell_min,
        interpreter.cell_max,
        interpreter.wrapping,
        interpreter.pointer_wrapping,
    )
    assert not interpreter.set_language_standard("brainfork")
    after = (
        interpreter.language_standard,
        interpreter.tape.length,
        interpreter.cell_min,
        interpreter.cell_max,
        interpreter.wrapping,
        interpreter.pointer_wrapping,
    )
    assert before == after


def test_unexpected_failure_is_wrapped():
    def broken_sink(text):
        raise ValueError("sink closed")

    interpreter = Interpreter(output_sink=broken_sink)
    with pytest.raises(BPRuntimeError) as info:
        interpreter.run("+.")
    assert info.value.kind == KIND_INTERNAL
    assert "sink closed" in info.value.message
    assert info.value.token_index == 1


def test_op_counters_follow_execution():
    interpreter, _ = make()
    interpreter.run("+>")
    assert interpreter.tape.low_ops == 3
    assert interpreter.logger.next_step_index == 2


def test_traceback_formatter():
    interpreter, _ = make(verbose=True)
    with pytest.raises(BPRuntimeError) as info:
        interpreter.run("++]")
    formatter = TracebackFormatter(interpreter)
    text = formatter.format_text(info.value)
    assert "step 1: token 1 INCREMENT(1)" in text
    assert "[structure] at offset 2" in text
    data = json.loads(formatter.to_json(info.value))
    assert data["error"]["kind"] == KIND_STRUCTURE
    assert data["error"]["token_index"] == 2
    assert data["error"]["failing_step_index"] == 2
    assert len(data["trace"]) == 2
