import unittest

import rdlgen
from rdlgen import (
    AccessMode,
    Options,
    RdlDuplicateDefinitionError,
    RdlInvalidExtendTargetError,
    RdlMergeError,
    RdlOverlayError,
    RdlOverlayTargetError,
    build_address_space,
    merge_overlays,
)
from rdlgen.loader import Origin
from rdlgen.syntax import parse_text

BASE = """\
peripheral UART @ 0x1000 {
    register CTRL @ 0x0 {
        field ENABLE[0] { access = rw; }
        field MODE[2:1] {}
    }
    register R @ 0x4 { width = 8; }
    block CH[2] @ 0x10 { register CFG {} }
}
"""


def _merge(*overlays, base=BASE):
    space = build_address_space([parse_text(base, "rtl/uart.rdl")], Options())
    documents = [
        parse_text(text, f"extra/{i}.rdl", Origin.OVERLAY) for i, text in enumerate(overlays)
    ]
    merge_overlays(space, documents, Options())
    return space


def _merge_errors(*overlays):
    try:
        _merge(*overlays)
    except RdlMergeError as e:
        return e.errors
    raise AssertionError("RdlMergeError not raised")


class TestOverride(unittest.TestCase):
    def test_override_width(self):
        space = _merge("override UART.R.width = 16;")
        self.assertEqual(space["UART.R"].width, 16)

    def test_override_field_access(self):
        space = _merge("override UART.CTRL.ENABLE.access = read-only;")
        self.assertEqual(space["UART.CTRL.ENABLE"].access, AccessMode.READ_ONLY)

    def test_override_block_form(self):
        space = _merge(
            """
            override UART.CTRL.MODE {
                bits = [3:1];
                values = { IDLE = 0, RUN = 5 };
                desc = "Operating mode";
            }
            """
        )
        mode = space["UART.CTRL.MODE"]
        self.assertEqual((mode.bits.high, mode.bits.low), (3, 1))
        self.assertEqual(mode.enums, {"IDLE": 0, "RUN": 5})
        self.assertEqual(mode.doc, "Operating mode")

    def test_last_write_wins(self):
        with self.assertLogs("rdlgen", level="INFO") as logs:
            space = _merge(
                "override UART.R.width = 16;",
                "override UART.R.width = 32;",
            )

        self.assertEqual(space["UART.R"].width, 32)
        self.assertIn(
            "'width' of UART.R overrides the value set at extra/0.rdl", "\n".join(logs.output)
        )

    def test_structural_attributes_are_rejected(self):
        errors = _merge_errors(
            "override UART.R.offset = 8;",
            "override UART.CH.count = 4;",
            "override UART.width = 16;",
        )

        self.assertEqual([type(e) for e in errors], [RdlOverlayError] * 3)
        self.assertEqual([e.path for e in errors], ["UART.R", "UART.CH", "UART"])
        self.assertIn("cannot be changed", errors[0].message)
        self.assertIn("not an attribute of a peripheral", errors[2].message)

    def test_override_enum_reaches_encoding_fields(self):
        space = _merge(
            "override LEVEL { MID = 2; }",
            base="enum LEVEL { LOW = 0; HIGH = 1; }\n"
            "peripheral A @ 0 { register R { field L[1:0] { encode = LEVEL; } } }",
        )

        self.assertEqual(space["A.R.L"].enums, {"LOW": 0, "HIGH": 1, "MID": 2})
        self.assertIs(space["A.R.L"].enum_type, space.enums["LEVEL"])

    def test_field_values_replace_encoded_enum(self):
        space = _merge(
            "override A.R.L.values = { ON = 1 };",
            base="enum LEVEL { LOW = 0; HIGH = 1; }\n"
            "peripheral A @ 0 { register R { field L[0] { encode = LEVEL; } } }",
        )

        self.assertIsNone(space["A.R.L"].enum_type)
        self.assertEqual(space["A.R.L"].enums, {"ON": 1})

    def test_missing_target(self):
        (error,) = _merge_errors("override UART.NOPE.width = 16;")
        self.assertIsInstance(error, RdlOverlayTargetError)
        self.assertEqual(error.path, "UART.NOPE")
        self.assertEqual(error.location.unit, "extra/0.rdl")


class TestAnnotate(unittest.TestCase):
    def test_annotate_sets_doc_and_metadata(self):
        space = _merge('annotate UART.CTRL { desc = "Control"; owner = "fw"; }')
        self.assertEqual(space["UART.CTRL"].doc, "Control")
        self.assertEqual(space["UART.CTRL"].metadata, {"owner": "fw"})

    def test_annotate_rejects_known_attributes(self):
        (error,) = _merge_errors("annotate UART.CTRL.ENABLE.access = ro;")
        self.assertIsInstance(error, RdlOverlayError)
        self.assertIn("use override", error.message)


class TestExtend(unittest.TestCase):
    def test_extend_register_with_field(self):
        space = _merge("extend UART.CTRL { field PARITY[5:4] { access = w1c; } }")

        self.assertEqual(list(space["UART.CTRL"].fields), ["ENABLE", "MODE", "PARITY"])
        self.assertEqual(space["UART.CTRL.PARITY"].access, AccessMode.WRITE_ONE_TO_CLEAR)

    def test_extend_block_and_peripheral(self):
        space = _merge(
            """
            extend UART.CH { register VAL { field X[3:0] {} } }
            extend UART {
                enum LEVEL { LOW = 0; HIGH = 1; }
                register LVL @ 0x20 { field L[0] { encode = LEVEL; } }
            }
            """
        )

        self.assertEqual(space["UART.CH.VAL"].offset, 4)
        self.assertIn("UART.CH.VAL.X", space)
        self.assertEqual(space["UART.LVL.L"].enums, {"LOW": 0, "HIGH": 1})
        self.assertIn("UART.LEVEL", space)

    def test_overlay_declares_peripheral(self):
        space = _merge(
            """
            enum MODE { A = 0; B = 1; }
            peripheral TIMER @ 0x2000 { register CNT { field M[0] { encode = MODE; } } }
            """
        )
        self.assertEqual([p.name for p in space], ["UART", "TIMER"])
        self.assertEqual(space["TIMER.CNT.M"].enums, {"A": 0, "B": 1})

    def test_extend_field_is_rejected(self):
        (error,) = _merge_errors("extend UART.CTRL.ENABLE { field X[1] {} }")

        self.assertIsInstance(error, RdlInvalidExtendTargetError)
        self.assertEqual(error.kind, rdlgen.IssueKind.INVALID_EXTEND_TARGET)
        self.assertEqual(error.path, "UART.CTRL.ENABLE")

    def test_extend_missing_target(self):
        (error,) = _merge_errors("extend UART.NOPE { register X {} }")
        self.assertIsInstance(error, RdlInvalidExtendTargetError)

    def test_extend_with_existing_name(self):
        (error,) = _merge_errors("extend UART.CTRL { field ENABLE[7] {} }")
        self.assertIsInstance(error, RdlDuplicateDefinitionError)
        self.assertEqual(error.path, "UART.CTRL.ENABLE")

    def test_misplaced_element(self):
        (error,) = _merge_errors("extend UART.CTRL { register X {} }")
        self.assertIsInstance(error, RdlOverlayError)

    def test_all_directives_are_attempted(self):
        errors = _merge_errors(
            "extend UART.CTRL.ENABLE { field X[1] {} }",
            "override UART.R.width = 16; override UART.NOPE.width = 1;",
        )
        self.assertEqual(
            [type(e) for e in errors], [RdlInvalidExtendTargetError, RdlOverlayTargetError]
        )


if __name__ == "__main__":
    unittest.main()
