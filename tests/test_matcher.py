"""
Topic matcher: literal, single-segment and multi-segment wildcard matching,
plus pattern/topic validation.
"""

import unittest

from topic_hub.common.errors import ConfigurationError
from topic_hub.events.matcher import (
    TopicSyntax,
    compile_pattern,
    match_segments,
    matches,
    validate_pattern,
    validate_topic,
)


class TestMatches(unittest.TestCase):
    def test_literal_matches_itself_only(self):
        for topic in ["a", "a.b", "xbox.newgame", "Orders.Created"]:
            self.assertTrue(matches(topic, topic))
        self.assertFalse(matches("a.b", "a.c"))
        self.assertFalse(matches("a.b", "a.b.c"))
        self.assertFalse(matches("a.b.c", "a.b"))

    def test_literal_is_case_sensitive(self):
        self.assertFalse(matches("Xbox.NewGame", "xbox.newgame"))

    def test_single_segment_wildcard(self):
        self.assertTrue(matches("a.*.c", "a.b.c"))
        self.assertFalse(matches("a.*.c", "a.b.b.c"))
        self.assertFalse(matches("a.*.c", "a.c"))
        self.assertTrue(matches("*", "anything"))
        self.assertFalse(matches("*", "two.segments"))

    def test_multi_segment_wildcard_trailing(self):
        self.assertTrue(matches("a.#", "a"))
        self.assertTrue(matches("a.#", "a.b"))
        self.assertTrue(matches("a.#", "a.b.c"))
        self.assertFalse(matches("a.#", "b.a"))

    def test_multi_segment_wildcard_leading_and_interior(self):
        self.assertTrue(matches("#.c", "c"))
        self.assertTrue(matches("#.c", "a.b.c"))
        self.assertFalse(matches("#.c", "a.b.c.d"))
        self.assertTrue(matches("a.#.z", "a.z"))
        self.assertTrue(matches("a.#.z", "a.b.c.z"))
        self.assertFalse(matches("a.#.z", "a.b.c"))

    def test_backtracking_over_repeated_literal(self):
        # "#" must not stop at the first "c"
        self.assertTrue(matches("a.#.c.d", "a.c.x.c.d"))
        self.assertTrue(matches("#.*.c", "a.b.c"))
        self.assertFalse(matches("#.*.c", "c"))

    def test_catch_all(self):
        for topic in ["a", "a.b", "x.y.z.w", "xbox.newgame"]:
            self.assertTrue(matches("#", topic))

    def test_custom_syntax(self):
        syntax = TopicSyntax(delimiter="/", single="+", multi="**")
        self.assertTrue(matches("sensors/+/temp", "sensors/kitchen/temp", syntax))
        self.assertTrue(matches("sensors/**", "sensors/kitchen/temp", syntax))
        self.assertFalse(matches("sensors/+", "sensors/kitchen/temp", syntax))

    def test_match_segments_direct(self):
        self.assertTrue(match_segments(("a", "#"), ("a",)))
        self.assertFalse(match_segments(("a", "*"), ("a",)))


class TestValidation(unittest.TestCase):
    def test_valid_patterns(self):
        for p in ["a", "a.b", "a.*", "#", "a.#", "#.b", "a.#.b", "*.*"]:
            validate_pattern(p)

    def test_rejects_malformed_patterns(self):
        for p in ["", ".a", "a.", "a..b", "a.#.#", "a*", "a.b#", "#.x.#"]:
            with self.subTest(pattern=p):
                with self.assertRaises(ConfigurationError):
                    validate_pattern(p)

    def test_compiled_pattern(self):
        cp = compile_pattern("a.*.c")
        self.assertEqual(cp.segments, ("a", "*", "c"))
        self.assertFalse(cp.is_literal)
        self.assertTrue(cp.matches("a.x.c"))
        self.assertTrue(compile_pattern("a.b").is_literal)

    def test_validate_topic(self):
        self.assertEqual(validate_topic("xbox.newgame"), ("xbox", "newgame"))
        for t in ["", "a.", "a..b", "a.*", "#", "a.b#"]:
            with self.subTest(topic=t):
                with self.assertRaises(ConfigurationError):
                    validate_topic(t)

    def test_configuration_error_is_value_error(self):
        with self.assertRaises(ValueError):
            validate_pattern("a..b")


if __name__ == "__main__":
    unittest.main(verbosity=2)
