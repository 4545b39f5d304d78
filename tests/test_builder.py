import unittest

from rdlgen import (
    AccessMode,
    BitRange,
    Options,
    RdlBuildError,
    RdlDefinitionError,
    RdlDuplicateDefinitionError,
    RdlUnresolvedReferenceError,
    build_address_space,
)
from rdlgen.model import iter_instances
from rdlgen.syntax import parse_text

UART = """\
enum PARITY { NONE = 0; ODD = 1; EVEN = 2; }

peripheral UART @ 0x1000 {
    desc = "Serial port";
    enum SPEED { SLOW = 0; FAST = 1; }
    register CTRL @ 0x0 {
        field ENABLE[0] { access = rw; reset = 1; }
        field MODE[2:1] { values = { IDLE = 0, RUN = 1 }; }
        field PARITY[4:3] { encode = PARITY; }
        field SPEED { bits = [5:5]; encode = SPEED; }
    }
    register STATUS { access = ro; width = 16; }
    register DATA { width = 8; owner = "firmware"; }
    block CH[2] @ 0x10 += 0x8 {
        register CFG {}
        register VAL {}
    }
}
"""


def _build(*texts, options=Options()):
    documents = [parse_text(text, f"rtl/{i}.rdl") for i, text in enumerate(texts)]
    return build_address_space(documents, options)


class TestBuilder(unittest.TestCase):
    def test_builds_model(self):
        space = _build(UART)
        uart = space["UART"]

        self.assertEqual(uart.base_address, 0x1000)
        self.assertEqual(uart.doc, "Serial port")
        self.assertEqual(list(uart.children), ["CTRL", "STATUS", "DATA", "CH"])

        ctrl = space["UART.CTRL"]
        self.assertEqual((ctrl.offset, ctrl.width, ctrl.access), (0, 32, AccessMode.READ_WRITE))
        self.assertEqual(ctrl.reset_value, 1)

        self.assertEqual(space["UART.CTRL.MODE"].bits, BitRange(low=1, high=2))
        self.assertEqual(space["UART.CTRL.MODE"].enums, {"IDLE": 0, "RUN": 1})
        self.assertEqual(space["UART.CTRL.PARITY"].enums, {"NONE": 0, "ODD": 1, "EVEN": 2})
        self.assertIs(space["UART.CTRL.PARITY"].enum_type, space.enums["PARITY"])
        self.assertEqual(space["UART.CTRL.SPEED"].bits, BitRange(5, 5))
        self.assertEqual(space["UART.CTRL.SPEED"].enum_type.name, "SPEED")

        self.assertEqual(space["UART.DATA"].metadata, {"owner": "firmware"})

    def test_implicit_offsets(self):
        space = _build(UART)

        # Registers follow the previous sibling, aligned to their own size
        self.assertEqual(space["UART.STATUS"].offset, 0x4)
        self.assertEqual(space["UART.STATUS"].access, AccessMode.READ_ONLY)
        self.assertEqual(space["UART.DATA"].offset, 0x6)
        self.assertEqual(space["UART.CH.VAL"].offset, 0x4)

    def test_array_instances(self):
        space = _build(UART)
        addresses = {
            str(i.path): i.address for i in iter_instances(space["UART"])
        }

        self.assertEqual(addresses["UART.CH[0]"], 0x1010)
        self.assertEqual(addresses["UART.CH[1]"], 0x1018)
        self.assertEqual(addresses["UART.CH[1].VAL"], 0x101C)
        self.assertEqual(addresses["UART.DATA"], 0x1006)

    def test_default_width_and_access(self):
        options = Options(default_register_width=16, default_access="ro")
        space = _build("peripheral A @ 0 { register R {} }", options=options)

        self.assertEqual(space["A.R"].width, 16)
        self.assertEqual(space["A.R"].access, AccessMode.READ_ONLY)

    def test_duplicates_across_files(self):
        with self.assertRaises(RdlBuildError) as cm:
            _build(
                "peripheral UART @ 0x1000 { register CTRL {} }",
                "peripheral UART @ 0x2000 { register CTRL {} }",
            )

        (error,) = cm.exception.errors
        self.assertIsInstance(error, RdlDuplicateDefinitionError)
        self.assertEqual(error.path, "UART")
        self.assertEqual(error.location.unit, "rtl/1.rdl")
        self.assertIn("rtl/0.rdl:1:1", error.message)

    def test_collects_all_errors(self):
        with self.assertRaises(RdlBuildError) as cm:
            _build(
                """
                peripheral A @ 0 {
                    register R {
                        width = 8;
                        width = 16;
                        field X[3:0] { encode = MISSING; }
                        field X[7:4] {}
                        field Y[0:3] {}
                        field Z {}
                    }
                    register S { access = sometimes; }
                }
                peripheral B { }
                """
            )

        errors = cm.exception.errors
        self.assertEqual(
            [type(e) for e in errors],
            [
                RdlDuplicateDefinitionError,
                RdlUnresolvedReferenceError,
                RdlDuplicateDefinitionError,
                RdlDefinitionError,
                RdlDefinitionError,
                RdlDefinitionError,
                RdlDefinitionError,
            ],
        )
        self.assertEqual(errors[0].path, "A.R.width")
        self.assertEqual(errors[1].path, "A.R.X")
        self.assertEqual(errors[2].path, "A.R.X")
        self.assertIn("high bit is below low bit", errors[3].message)
        self.assertIn("no bit range", errors[4].message)
        self.assertIn("unknown access mode 'sometimes'", errors[5].message)
        self.assertIn("no base address", errors[6].message)

    def test_block_replication_declared_twice(self):
        with self.assertRaises(RdlBuildError) as cm:
            _build(
                """
                peripheral A @ 0 {
                    block CH[2] @ 0x10 += 0x8 { count = 4; stride = 0x10; register R {} }
                    block D[2] @ 0x40 { stride = 0x8; register R {} }
                }
                """
            )

        errors = cm.exception.errors
        self.assertEqual([type(e) for e in errors], [RdlDefinitionError] * 2)
        self.assertEqual([e.path for e in errors], ["A.CH", "A.CH"])
        self.assertIn("'count' given both in the declaration", errors[0].message)
        self.assertIn("'stride'", errors[1].message)

    def test_enum_scope_lookup(self):
        # Enums are looked up innermost scope first, then globally
        space = _build(
            """
            enum E { A = 1; }
            peripheral P @ 0 {
                enum E { A = 2; }
                register R { field F[1:0] { encode = E; } }
            }
            peripheral Q @ 0x100 {
                register R { field F[1:0] { encode = E; } }
            }
            """
        )

        self.assertEqual(space["P.R.F"].enums, {"A": 2})
        self.assertEqual(space["Q.R.F"].enums, {"A": 1})


if __name__ == "__main__":
    unittest.main()
