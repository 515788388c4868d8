########################################################################
# File name: test_sasl.py
# This file is part of: xmppsasl
#
# LICENSE
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU Lesser General Public License as
# published by the Free Software Foundation, either version 3 of the
# License, or (at your option) any later version.
#
# This program is distributed in the hope that it will be useful, but
# WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the GNU
# General Public License for more details.
#
# You should have received a copy of the GNU Lesser General Public
# License along with this program.  If not, see
# <http://www.gnu.org/licenses/>.
#
########################################################################
import base64
import unittest
import unittest.mock

import aiosasl

import xmppsasl.errors as errors
import xmppsasl.factory as factory
import xmppsasl.registry as registry
import xmppsasl.sasl as sasl

from xmppsasl.testutils import (
    run_coroutine,
    SASLInterfaceMock,
)

from .test_digest_md5 import RFC_CHALLENGE, RFC_CNONCE, RFC_RSPAUTH
from .test_scram import (
    RFC5802_CLIENT_NONCE,
    RFC5802_CLIENT_FIRST,
    RFC5802_SERVER_FIRST,
    RFC5802_CLIENT_FINAL,
    RFC5802_SERVER_FINAL,
)


RFC_DIGEST_RESPONSE = (
    b'username="chris",realm="elwood.innosoft.com",'
    b'nonce="OA6MG9tEQGm2hh",cnonce="OA6MHXh6VqTrRk",'
    b'nc=00000001,qop=auth,digest-uri="imap/elwood.innosoft.com",'
    b'response=d388dad90d4bbd760a152321f2143af7,charset=utf-8'
)


class TestMechanismDriver(unittest.TestCase):
    def setUp(self):
        self.registry = registry.MechanismRegistry()
        self.factory = factory.MechanismFactory(self.registry)

    def tearDown(self):
        del self.factory
        del self.registry

    def _driver(self, mechanisms, **credentials):
        return sasl.MechanismDriver(self.factory, mechanisms, **credentials)

    def _authenticate(self, driver, token, actions, nonce=None):
        intf = SASLInterfaceMock(self, actions)
        sm = aiosasl.SASLStateMachine(intf)
        with unittest.mock.patch(
                "xmppsasl.hashes.make_nonce") as make_nonce:
            make_nonce.return_value = nonce
            try:
                return run_coroutine(driver.authenticate(sm, token))
            finally:
                intf.finalize()

    def test_is_sasl_mechanism(self):
        self.assertTrue(issubclass(
            sasl.MechanismDriver,
            aiosasl.SASLMechanism,
        ))

    def test_any_supported_follows_preference(self):
        driver = self._driver(["SCRAM-SHA-1", "DIGEST-MD5", "PLAIN"])
        self.assertEqual(
            driver.any_supported(["PLAIN", "DIGEST-MD5", "SCRAM-SHA-1"]),
            "SCRAM-SHA-1",
        )
        self.assertEqual(
            driver.any_supported(["PLAIN", "DIGEST-MD5"]),
            "DIGEST-MD5",
        )

    def test_any_supported_returns_server_spelling(self):
        driver = self._driver(["SCRAM-SHA-1"])
        self.assertEqual(
            driver.any_supported(["scram-sha-1"]),
            "scram-sha-1",
        )

    def test_any_supported_without_common_mechanism(self):
        driver = self._driver(["SCRAM-SHA-1", "PLAIN"])
        self.assertIsNone(driver.any_supported(["GSSAPI", "EXTERNAL"]))
        self.assertIsNone(driver.any_supported([]))

    def test_any_supported_skips_unresolvable_preferences(self):
        driver = self._driver(["X-UNKNOWN", "PLAIN"])
        self.assertEqual(
            driver.any_supported(["X-UNKNOWN", "PLAIN"]),
            "PLAIN",
        )

    def test_plain(self):
        driver = self._driver(["PLAIN"], username="user", password="pencil")
        m = self._authenticate(driver, "PLAIN", [
            ("auth;PLAIN", b"\0user\0pencil", "success", None),
        ])
        self.assertTrue(m.is_completed())
        self.assertEqual(m.name, "PLAIN")

    def test_server_failure(self):
        driver = self._driver(["PLAIN"], username="user", password="pencil")
        with self.assertRaises(aiosasl.SASLFailure) as ctx:
            self._authenticate(driver, "PLAIN", [
                ("auth;PLAIN", b"\0user\0pencil",
                 "failure", ("not-authorized", None)),
            ])
        self.assertEqual(ctx.exception.opaque_error, "not-authorized")

    def test_scram_with_success_data(self):
        driver = self._driver(["SCRAM-SHA-1"],
                              username="user", password="pencil")
        m = self._authenticate(driver, "SCRAM-SHA-1", [
            ("auth;SCRAM-SHA-1", RFC5802_CLIENT_FIRST,
             "challenge", RFC5802_SERVER_FIRST),
            ("response", RFC5802_CLIENT_FINAL,
             "success", RFC5802_SERVER_FINAL),
        ], nonce=RFC5802_CLIENT_NONCE)
        self.assertTrue(m.is_completed())

    def test_scram_with_final_challenge(self):
        driver = self._driver(["SCRAM-SHA-1"],
                              username="user", password="pencil")
        m = self._authenticate(driver, "SCRAM-SHA-1", [
            ("auth;SCRAM-SHA-1", RFC5802_CLIENT_FIRST,
             "challenge", RFC5802_SERVER_FIRST),
            ("response", RFC5802_CLIENT_FINAL,
             "challenge", RFC5802_SERVER_FINAL),
            ("response", b"", "success", None),
        ], nonce=RFC5802_CLIENT_NONCE)
        self.assertTrue(m.is_completed())

    def test_scram_bad_signature_in_challenge_aborts(self):
        driver = self._driver(["SCRAM-SHA-1"],
                              username="user", password="pencil")
        with self.assertRaises(errors.ServerVerificationError):
            self._authenticate(driver, "SCRAM-SHA-1", [
                ("auth;SCRAM-SHA-1", RFC5802_CLIENT_FIRST,
                 "challenge", RFC5802_SERVER_FIRST),
                ("response", RFC5802_CLIENT_FINAL,
                 "challenge", b"v=" + base64.b64encode(b"x" * 20)),
                ("abort", None, "failure", None),
            ], nonce=RFC5802_CLIENT_NONCE)

    def test_scram_bad_signature_in_success_data(self):
        driver = self._driver(["SCRAM-SHA-1"],
                              username="user", password="pencil")
        with self.assertRaises(errors.ServerVerificationError):
            self._authenticate(driver, "SCRAM-SHA-1", [
                ("auth;SCRAM-SHA-1", RFC5802_CLIENT_FIRST,
                 "challenge", RFC5802_SERVER_FIRST),
                ("response", RFC5802_CLIENT_FINAL,
                 "success", b"v=" + base64.b64encode(b"x" * 20)),
            ], nonce=RFC5802_CLIENT_NONCE)

    def test_scram_nonce_mismatch_aborts(self):
        driver = self._driver(["SCRAM-SHA-1"],
                              username="user", password="pencil")
        with self.assertRaises(errors.NonceMismatchError):
            self._authenticate(driver, "SCRAM-SHA-1", [
                ("auth;SCRAM-SHA-1", RFC5802_CLIENT_FIRST,
                 "challenge", b"r=foo,s=QSXCR+Q6sek8bf92,i=4096"),
                ("abort", None, "failure", None),
            ], nonce=RFC5802_CLIENT_NONCE)

    def test_early_success_is_protocol_violation(self):
        driver = self._driver(["SCRAM-SHA-1"],
                              username="user", password="pencil")
        with self.assertRaisesRegex(aiosasl.SASLFailure,
                                    "protocol violation"):
            self._authenticate(driver, "SCRAM-SHA-1", [
                ("auth;SCRAM-SHA-1", RFC5802_CLIENT_FIRST,
                 "success", None),
            ], nonce=RFC5802_CLIENT_NONCE)

    def test_digest_md5_with_rspauth_challenge(self):
        driver = self._driver(["DIGEST-MD5"],
                              username="chris", password="secret",
                              host="elwood.innosoft.com",
                              service_type="imap")
        m = self._authenticate(driver, "DIGEST-MD5", [
            ("auth;DIGEST-MD5", None, "challenge", RFC_CHALLENGE),
            ("response", RFC_DIGEST_RESPONSE, "challenge", RFC_RSPAUTH),
            ("response", b"", "success", None),
        ], nonce=RFC_CNONCE)
        self.assertTrue(m.is_completed())

    def test_digest_md5_with_rspauth_in_success(self):
        driver = self._driver(["DIGEST-MD5"],
                              username="chris", password="secret",
                              host="elwood.innosoft.com",
                              service_type="imap")
        m = self._authenticate(driver, "DIGEST-MD5", [
            ("auth;DIGEST-MD5", None, "challenge", RFC_CHALLENGE),
            ("response", RFC_DIGEST_RESPONSE, "success", RFC_RSPAUTH),
        ], nonce=RFC_CNONCE)
        self.assertTrue(m.is_completed())

    def test_digest_md5_rspauth_mismatch(self):
        driver = self._driver(["DIGEST-MD5"],
                              username="chris", password="secret",
                              host="elwood.innosoft.com",
                              service_type="imap")
        with self.assertRaises(errors.ServerVerificationError):
            self._authenticate(driver, "DIGEST-MD5", [
                ("auth;DIGEST-MD5", None, "challenge", RFC_CHALLENGE),
                ("response", RFC_DIGEST_RESPONSE, "challenge",
                 b"rspauth=00000000000000000000000000000000"),
                ("abort", None, "failure", None),
            ], nonce=RFC_CNONCE)

    def test_unknown_token(self):
        driver = self._driver(["PLAIN"])
        with self.assertRaises(errors.UnknownMechanismError):
            self._authenticate(driver, "X-UNKNOWN", [])

    def test_missing_credentials_do_not_initiate(self):
        driver = self._driver(["PLAIN"], username="user")
        with self.assertRaises(errors.InvalidArgumentError):
            self._authenticate(driver, "PLAIN", [])

    def test_digest_md5_without_realm_or_host_aborts(self):
        driver = self._driver(["DIGEST-MD5"],
                              username="chris", password="secret")
        with self.assertRaises(errors.InvalidArgumentError):
            self._authenticate(driver, "DIGEST-MD5", [
                ("auth;DIGEST-MD5", None, "challenge",
                 b'nonce="abc",algorithm=md5-sess'),
                ("abort", None, "failure", None),
            ], nonce=RFC_CNONCE)

    def test_prepare_does_not_touch_stream(self):
        driver = self._driver(["PLAIN"], username="user", password="pencil")
        m, initial = driver.prepare("PLAIN")
        self.assertEqual(initial, b"\0user\0pencil")
        self.assertTrue(m.is_completed())

    def test_authenticate_with_prepared_mechanism(self):
        driver = self._driver(["PLAIN"], username="user", password="pencil")
        prepared = driver.prepare("PLAIN")
        intf = SASLInterfaceMock(self, [
            ("auth;PLAIN", b"\0user\0pencil", "success", None),
        ])
        sm = aiosasl.SASLStateMachine(intf)
        with unittest.mock.patch.object(
                self.factory, "create") as create:
            m = run_coroutine(driver.authenticate(sm, "PLAIN",
                                                  prepared=prepared))
        intf.finalize()
        create.assert_not_called()
        self.assertIs(m, prepared[0])
