import unittest
from pathlib import Path

from rdlgen import RdlSyntaxError
from rdlgen._lexer import Number, TokenKind, tokenize_all
from rdlgen.loader import Origin, SourceUnit
from rdlgen.syntax import (
    BitSpec,
    Directive,
    DirectiveOp,
    ScopeKind,
    Word,
    parse_text,
    parse_units,
)

UART = """\
// Serial port
peripheral UART @ 0x1000 {
    desc = "Serial port";
    register CTRL @ 0x0 {
        width = 32;
        reset = 32'h0;
        field ENABLE[0] { access = rw; }
        field MODE[2:1] { values = { IDLE = 0, RUN = 1 }; }
    }
    /* Status flags */
    reg STATUS @ 0x4 { access = read-only; field READY[0] {} }
    block CH[4] @ 0x10 += 0x8 {
        register DATA {}
    }
}

enum PARITY { NONE = 0; ODD = 1; EVEN = 2; }
"""


def _numbers(text):
    return [t.value for t in tokenize_all(text, "t.rdl") if t.kind is TokenKind.NUMBER]


class TestLexer(unittest.TestCase):
    def test_number_literals(self):
        self.assertEqual(
            _numbers("42 0x1F 0b101 1_000 8'b1010 32'h1F 4'd3 0x1Fu8"),
            [
                Number(42),
                Number(31),
                Number(5),
                Number(1000),
                Number(10, 8),
                Number(31, 32),
                Number(3, 4),
                Number(31, 8),
            ],
        )

    def test_sized_literal_overflow_is_rejected(self):
        with self.assertRaises(RdlSyntaxError) as cm:
            tokenize_all("x = 4'hFF;", "t.rdl")
        self.assertEqual(cm.exception.location.column, 5)

    def test_prefix_without_digits_is_rejected(self):
        for literal in ("0x_", "0b_", "0o__"):
            with self.assertRaises(RdlSyntaxError) as cm:
                tokenize_all(f"x = {literal};", "t.rdl")
            self.assertEqual(cm.exception.location.column, 5)

    def test_unterminated_comment(self):
        with self.assertRaises(RdlSyntaxError) as cm:
            tokenize_all("peripheral A /* no end", "t.rdl")
        self.assertEqual(cm.exception.found, "end of file")

    def test_locations_are_one_based(self):
        tokens = tokenize_all("a\n  b /* x\n y */ c", "t.rdl")
        locations = [(t.location.line, t.location.column) for t in tokens[:3]]
        self.assertEqual(locations, [(1, 1), (2, 3), (3, 7)])


class TestParser(unittest.TestCase):
    def test_parses_declarations(self):
        document = parse_text(UART, "rtl/uart.rdl")

        self.assertEqual([s.kind for s in document.scopes], [ScopeKind.PERIPHERAL, ScopeKind.ENUM])

        uart = document.scopes[0]
        self.assertEqual(uart.name, "UART")
        self.assertEqual(uart.offset, 0x1000)
        self.assertEqual(uart.attributes[0].value, "Serial port")

        ctrl, status, channels = uart.children
        self.assertEqual(ctrl.kind, ScopeKind.REGISTER)
        self.assertEqual(status.kind, ScopeKind.REGISTER)
        self.assertEqual(status.attributes[0].value, Word("read-only"))

        enable, mode = ctrl.children
        self.assertEqual(enable.bits, BitSpec(0, 0))
        self.assertEqual(mode.bits, BitSpec(high=2, low=1))
        self.assertEqual(mode.attributes[0].value, {"IDLE": Number(0), "RUN": Number(1)})

        self.assertEqual(channels.kind, ScopeKind.BLOCK)
        self.assertEqual((channels.count, channels.offset, channels.stride), (4, 0x10, 0x8))

        self.assertEqual(ctrl.location.line, 4)

    def test_directives_only_in_overlays(self):
        with self.assertRaises(RdlSyntaxError):
            parse_text("override UART.CTRL.width = 16;", "rtl/uart.rdl")

    def test_parses_directives(self):
        document = parse_text(
            """
            override UART.CTRL.ENABLE.access = read-only;
            annotate UART.CTRL { desc = "Control"; owner = "fw"; }
            extend UART.CTRL { field PARITY[5:4] { access = rw; } }
            """,
            "overlay/uart.rdl",
            Origin.OVERLAY,
        )
        override, annotate, extend = document.directives

        self.assertIsInstance(override, Directive)
        self.assertEqual(override.op, DirectiveOp.OVERRIDE)
        self.assertEqual(str(override.target), "UART.CTRL.ENABLE")
        self.assertEqual(override.attributes[0].key, "access")

        self.assertEqual(annotate.op, DirectiveOp.ANNOTATE)
        self.assertEqual([a.key for a in annotate.attributes], ["desc", "owner"])

        self.assertEqual(extend.op, DirectiveOp.EXTEND)
        self.assertEqual(extend.children[0].kind, ScopeKind.FIELD)

    def test_override_cannot_declare_elements(self):
        with self.assertRaises(RdlSyntaxError):
            parse_text(
                "override UART.CTRL { field X[1] {} }", "overlay/uart.rdl", Origin.OVERLAY
            )

    def test_syntax_error_location(self):
        text = 'peripheral UART @ 0x1000 {\n  register CTRL { width = ; }\n}\n'
        with self.assertRaises(RdlSyntaxError) as cm:
            parse_text(text, "rtl/uart.rdl")

        error = cm.exception
        self.assertEqual((error.location.unit, error.location.line), ("rtl/uart.rdl", 2))
        self.assertEqual(error.location.column, 27)
        self.assertEqual(error.expected, "a value")
        self.assertEqual(error.found, "';'")

    def test_fields_only_in_registers(self):
        with self.assertRaises(RdlSyntaxError):
            parse_text("peripheral A @ 0 { field X[0] {} }", "rtl/a.rdl")

    def test_parse_units_collects_errors(self):
        units = [
            SourceUnit(Origin.BASE, "rtl/a.rdl", Path("a.rdl"), "peripheral A @ 0 { }"),
            SourceUnit(Origin.BASE, "rtl/b.rdl", Path("b.rdl"), "peripheral B {"),
            SourceUnit(Origin.BASE, "rtl/c.rdl", Path("c.rdl"), "peripheral C @ 4 { }"),
        ]

        for jobs in (1, 3):
            documents, errors = parse_units(units, jobs=jobs)
            self.assertEqual([d.unit for d in documents], ["rtl/a.rdl", "rtl/c.rdl"])
            self.assertEqual(len(errors), 1)
            self.assertEqual(errors[0].location.unit, "rtl/b.rdl")

    def test_parse_units_collects_bad_literals(self):
        units = [
            SourceUnit(Origin.BASE, "rtl/a.rdl", Path("a.rdl"), "peripheral A @ 0x_ {}"),
            SourceUnit(
                Origin.BASE, "rtl/b.rdl", Path("b.rdl"), "peripheral B @ 0x1000 { garbage }"
            ),
        ]

        documents, errors = parse_units(units)

        self.assertEqual(documents, [])
        self.assertEqual([e.location.unit for e in errors], ["rtl/a.rdl", "rtl/b.rdl"])
        self.assertTrue(all(isinstance(e, RdlSyntaxError) for e in errors))


if __name__ == "__main__":
    unittest.main()
