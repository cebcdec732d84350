import unittest

from kfetch.protocol.errors import errors, ERROR_TABLE


class ErrorsTests(unittest.TestCase):

    def test_codes_available_by_name(self):
        self.assertEqual(errors.no_error, 0)
        self.assertEqual(errors.offset_out_of_range, 1)
        self.assertEqual(errors.unknown_topic_or_partition, 3)
        self.assertEqual(errors.not_partition_leader, 6)

    def test_retriable_set(self):
        self.assertIn(errors.leader_not_available, errors.retriable)
        self.assertNotIn(errors.offset_out_of_range, errors.retriable)
        self.assertNotIn(errors.no_error, errors.retriable)

    def test_name_of(self):
        self.assertEqual(errors.name_of(1), "offset_out_of_range")
        self.assertEqual(errors.name_of(999), "unknown")

    def test_is_error(self):
        self.assertFalse(errors.is_error(0))
        self.assertTrue(errors.is_error(-1))
        self.assertTrue(errors.is_error(3))


class ErrorTableTests(unittest.TestCase):

    def test_all_error_codes_accounted_for(self):
        highest_known_error_code = 16
        unused_error_codes = {13}

        for code in range(-1, highest_known_error_code + 1):
            if code in unused_error_codes:
                continue

            self.assertIn(code, errors.names)

    def test_codes_and_names_unique(self):
        codes = [code for code, _, _ in ERROR_TABLE]
        names = [name for _, name, _ in ERROR_TABLE]

        self.assertEqual(len(codes), len(set(codes)))
        self.assertEqual(len(names), len(set(names)))
