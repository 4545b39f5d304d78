import unittest

from rdlgen.memory_block import MemoryBlock


class TestMemoryBlock(unittest.TestCase):
    def test_map_range(self):
        block = (
            MemoryBlock.Builder()
            .set_extent(offset=0x100, length=16)
            .map_range(0x100, 0x104)
            .map_range(0x10C, 0x10F)
            .build()
        )

        self.assertEqual(len(block), 16)
        self.assertEqual(block.offset, 0x100)
        self.assertTrue(block.is_mapped(0x100))
        self.assertFalse(block.is_mapped(0x104))
        self.assertTrue(block.is_mapped(0x10E))
        self.assertFalse(block.is_mapped(0x10F))

    def test_ranges_are_clipped_to_the_block(self):
        block = (
            MemoryBlock.Builder()
            .set_extent(offset=0x10, length=8)
            .map_range(0x0, 0x12)
            .map_range(0x16, 0x40)
            .map_range(0x14, 0x14)
            .build()
        )

        self.assertTrue(block.is_mapped(0x11))
        self.assertFalse(block.is_mapped(0x14))
        self.assertTrue(block.is_mapped(0x17))
        self.assertEqual(block.unmapped_ranges(), [(0x12, 0x16)])

    def test_unmapped_ranges(self):
        block = (
            MemoryBlock.Builder()
            .set_extent(offset=0, length=32)
            .map_range(0, 4)
            .map_range(8, 12)
            .map_range(12, 16)
            .map_range(20, 24)
            .build()
        )

        self.assertEqual(block.unmapped_ranges(), [(4, 8), (16, 20)])

    def test_no_unmapped_ranges(self):
        empty = MemoryBlock.Builder().set_extent(offset=0, length=8).build()
        self.assertEqual(empty.unmapped_ranges(), [])

        full = MemoryBlock.Builder().set_extent(offset=0, length=8).map_range(0, 8).build()
        self.assertEqual(full.unmapped_ranges(), [])

    def test_missing_extent(self):
        with self.assertRaises(ValueError):
            MemoryBlock.Builder().build()

    def test_out_of_bounds(self):
        block = MemoryBlock.Builder().set_extent(offset=0x10, length=4).build()
        with self.assertRaises(IndexError):
            block.is_mapped(0x14)
        with self.assertRaises(IndexError):
            block.is_mapped(0xF)


if __name__ == "__main__":
    unittest.main()
