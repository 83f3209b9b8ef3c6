"""
Tests for the DN helpers.
"""

import unittest

from ldapapi.dn import build_dn, get_ou, parse_dn


class TestParseDN(unittest.TestCase):
    """Test splitting a DN into its attribute values."""

    def test_groups_by_attribute_type(self):
        self.assertEqual(
            parse_dn("uid=bob,ou=people,ou=staff,dc=example,dc=com"),
            {"uid": ["bob"], "ou": ["people", "staff"], "dc": ["example", "com"]},
        )

    def test_keeps_first_seen_order(self):
        parsed = parse_dn("cn=x,dc=example,ou=people,dc=com")
        self.assertEqual(list(parsed), ["cn", "dc", "ou"])
        self.assertEqual(parsed["dc"], ["example", "com"])

    def test_unescapes_values(self):
        self.assertEqual(
            parse_dn(r"cn=Smith\, John,ou=people,dc=example,dc=com")["cn"],
            ["Smith, John"],
        )

    def test_multivalued_rdn(self):
        self.assertEqual(
            parse_dn("cn=Bob+sn=Smith,dc=example"),
            {"cn": ["Bob"], "sn": ["Smith"], "dc": ["example"]},
        )

    def test_empty(self):
        self.assertEqual(parse_dn(""), {})

    def test_invalid(self):
        with self.assertLogs("django-ldapapi", level="WARNING") as logs:
            self.assertEqual(parse_dn("this is not a dn"), {})
        self.assertIn("ldapapi.parse_dn.failed", logs.output[0])


class TestGetOU(unittest.TestCase):
    """Test finding the first organizational unit in a DN."""

    def test_first_ou(self):
        self.assertEqual(get_ou("uid=bob,ou=people,ou=staff,dc=example,dc=com"), "people")

    def test_case_insensitive(self):
        self.assertEqual(get_ou("uid=bob,OU=People,dc=example,dc=com"), "People")

    def test_no_ou(self):
        self.assertIsNone(get_ou("uid=bob,dc=example,dc=com"))


class TestBuildDN(unittest.TestCase):
    """Test building a DN from an attribute value and base."""

    def test_build(self):
        self.assertEqual(
            build_dn("uid", "bob", "ou=people,dc=example,dc=com"),
            "uid=bob,ou=people,dc=example,dc=com",
        )

    def test_escapes_value(self):
        dn = build_dn("cn", "Smith, John", "ou=people,dc=example,dc=com")
        self.assertEqual(dn, r"cn=Smith\, John,ou=people,dc=example,dc=com")
        self.assertEqual(parse_dn(dn)["cn"], ["Smith, John"])

    def test_no_basedn(self):
        self.assertEqual(build_dn("ou", "people", ""), "ou=people")
