import unittest

from rdlgen import IssueKind, Options, Severity, build_address_space, merge_overlays, validate
from rdlgen.loader import Origin
from rdlgen.syntax import parse_text
from rdlgen.validation import build_address_map


def _validate(text, options=Options()):
    space = build_address_space([parse_text(text, "rtl/test.rdl")], options)
    return validate(space, options)


def _kinds(issues):
    return [(i.kind, i.severity) for i in issues]


class TestValidation(unittest.TestCase):
    def test_valid_description(self):
        issues = _validate(
            """
            peripheral UART @ 0x1000 {
                register CTRL @ 0x0 {
                    field ENABLE[0] { reset = 1; }
                    field MODE[2:1] { values = { IDLE = 0, RUN = 3 }; }
                }
                register STATUS @ 0x4 { access = ro; }
                block CH[2] @ 0x8 += 0x4 { register VAL {} }
            }
            peripheral TIMER @ 0x2000 { register CNT {} }
            """
        )
        self.assertEqual(issues, [])

    def test_field_overlap(self):
        issues = _validate(
            """
            peripheral A @ 0 {
                register R {
                    field X[3:0] {}
                    field Y[5:3] {}
                }
            }
            """
        )

        (issue,) = issues
        self.assertEqual(issue.kind, IssueKind.FIELD_OVERLAP)
        self.assertEqual(issue.path, "A.R.Y")
        self.assertIn("A.R.X[3:0] overlaps field A.R.Y[5:3]", issue.message)

    def test_field_out_of_range(self):
        issues = _validate("peripheral A @ 0 { register R { width = 8; field X[8] {} } }")
        self.assertEqual(_kinds(issues), [(IssueKind.FIELD_OUT_OF_RANGE, Severity.ERROR)])

    def test_reset_values(self):
        issues = _validate(
            """
            peripheral A @ 0 {
                register R { width = 8; reset = 0x100; }
                register S { field X[1:0] { reset = 4; } }
                register T { reset = 0x80; field X[1:0] {} }
            }
            """,
            Options(report_gaps=False),
        )

        self.assertEqual(
            _kinds(issues),
            [
                (IssueKind.INVALID_RESET_VALUE, Severity.ERROR),
                (IssueKind.INVALID_RESET_VALUE, Severity.ERROR),
                (IssueKind.RESERVED_BITS, Severity.WARNING),
            ],
        )
        self.assertEqual([i.path for i in issues], ["A.R", "A.S.X", "A.T"])

    def test_unsupported_width(self):
        issues = _validate("peripheral A @ 0 { register R { width = 12; } }")
        self.assertEqual(_kinds(issues), [(IssueKind.INVALID_WIDTH, Severity.ERROR)])

    def test_enum_value_too_wide(self):
        issues = _validate(
            "peripheral A @ 0 { register R { field X[1:0] { values = { BIG = 4 }; } } }"
        )
        self.assertEqual(_kinds(issues), [(IssueKind.INVALID_ENUM_VALUE, Severity.ERROR)])

    def test_enum_value_added_by_overlay_too_wide(self):
        options = Options(report_gaps=False)
        space = build_address_space(
            [
                parse_text(
                    "enum LEVEL { LOW = 0; HIGH = 1; }\n"
                    "peripheral A @ 0 { register R { field L[0] { encode = LEVEL; } } }",
                    "rtl/test.rdl",
                )
            ],
            options,
        )
        overlay = parse_text("override LEVEL { HUGE = 7; }", "extra/a.rdl", Origin.OVERLAY)
        merge_overlays(space, [overlay], options)

        (issue,) = validate(space, options)
        self.assertEqual(issue.kind, IssueKind.INVALID_ENUM_VALUE)
        self.assertEqual(issue.path, "A.R.L")
        self.assertIn("HUGE = 0x7 does not fit in 1 bits", issue.message)

    def test_register_collision(self):
        issues = _validate(
            """
            peripheral A @ 0 {
                register R @ 0x0 {}
                register S @ 0x2 { width = 16; }
            }
            """
        )

        (issue,) = issues
        self.assertEqual(issue.kind, IssueKind.ADDRESS_COLLISION)
        self.assertEqual(issue.path, "A.S")
        self.assertEqual(issue.location.line, 4)

    def test_peripheral_collision(self):
        issues = _validate(
            """
            peripheral A @ 0x1000 { register R {} }
            peripheral B @ 0x1000 { register R {} }
            """
        )

        (issue,) = issues
        self.assertEqual(issue.kind, IssueKind.ADDRESS_COLLISION)
        self.assertIn("A [0x1000, 0x1004)", issue.message)
        self.assertIn("B [0x1000, 0x1004)", issue.message)

    def test_array_stride_too_small(self):
        issues = _validate(
            "peripheral A @ 0 { block CH[2] @ 0 += 0x4 { register X {} register Y {} } }"
        )

        self.assertIn(IssueKind.ADDRESS_COLLISION, [i.kind for i in issues])
        self.assertTrue(all(i.is_error for i in issues))

    def test_ignore_overlapping_structures(self):
        options = Options(ignore_overlapping_structures=True)
        issues = _validate(
            """
            peripheral A @ 0x1000 { register R {} }
            peripheral B @ 0x1000 { register R {} }
            """,
            options,
        )
        self.assertEqual(_kinds(issues), [(IssueKind.ADDRESS_COLLISION, Severity.WARNING)])

    def test_size_exceeded(self):
        issues = _validate("peripheral A @ 0 { size = 4; register R @ 0x4 {} }")
        self.assertIn(IssueKind.SIZE_EXCEEDED, [i.kind for i in issues])

    def test_gaps(self):
        text = "peripheral A @ 0 { register R @ 0x0 {} register S @ 0x8 {} }"

        (issue,) = _validate(text)
        self.assertEqual((issue.kind, issue.severity), (IssueKind.RESERVED_GAP, Severity.WARNING))
        self.assertIn("[0x4, 0x8)", issue.message)

        self.assertEqual(_validate(text, Options(report_gaps=False)), [])


class TestAddressMap(unittest.TestCase):
    def test_address_map(self):
        space = build_address_space(
            [
                parse_text(
                    """
                    peripheral A @ 0x4000 {
                        register R @ 0x0 { reset = 0x11223344; }
                        register S @ 0x8 { width = 16; field X[15:8] { reset = 0xAB; } }
                    }
                    """,
                    "rtl/a.rdl",
                )
            ],
            Options(),
        )

        address_map = build_address_map(space["A"])

        self.assertEqual(len(address_map), 0xA)
        self.assertTrue(address_map.is_mapped(0x0))
        self.assertTrue(address_map.is_mapped(0x9))
        self.assertFalse(address_map.is_mapped(0x4))
        self.assertEqual(address_map.unmapped_ranges(), [(0x4, 0x8)])


if __name__ == "__main__":
    unittest.main()
