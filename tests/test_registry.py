########################################################################
# File name: test_registry.py
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
import functools
import threading
import unittest

import xmppsasl.digest_md5 as digest_md5
import xmppsasl.errors as errors
import xmppsasl.mechanism as mechanism
import xmppsasl.plain as plain
import xmppsasl.registry as registry
import xmppsasl.scram as scram


class Dummy(mechanism.Mechanism):
    NAME = "X-DUMMY"

    def _start(self):
        return None

    def _step(self, server_challenge):
        self._complete()
        return b""


class Testnormalize_name(unittest.TestCase):
    def test_upper_case(self):
        self.assertEqual(registry.normalize_name("scram-sha-1"),
                         "SCRAM-SHA-1")

    def test_keeps_non_ascii(self):
        self.assertEqual(registry.normalize_name("\u00df"), "\u00df")
        self.assertEqual(registry.normalize_name("\u017fcram-sha-1"),
                         "\u017fCRAM-SHA-1")


class TestBUILTIN_MECHANISMS(unittest.TestCase):
    def test_contents(self):
        self.assertSequenceEqual(
            registry.BUILTIN_MECHANISMS,
            [
                registry.MechanismDescriptor("PLAIN", plain.PLAIN),
                registry.MechanismDescriptor("DIGEST-MD5",
                                             digest_md5.DigestMD5),
                registry.MechanismDescriptor("SCRAM-SHA-1", scram.SCRAM),
            ]
        )


class TestMechanismRegistry(unittest.TestCase):
    def setUp(self):
        self.r = registry.MechanismRegistry()

    def tearDown(self):
        del self.r

    def test_contains_builtins(self):
        self.assertSequenceEqual(
            list(self.r),
            ["PLAIN", "DIGEST-MD5", "SCRAM-SHA-1"],
        )
        self.assertEqual(len(self.r), 3)
        self.assertIs(self.r.lookup("SCRAM-SHA-1"), scram.SCRAM)

    def test_register_and_lookup(self):
        self.r.register("X-DUMMY", Dummy)
        self.assertIs(self.r.lookup("X-DUMMY"), Dummy)
        self.assertIn("X-DUMMY", self.r)
        self.assertEqual(len(self.r), 4)
        self.assertEqual(list(self.r)[-1], "X-DUMMY")

    def test_lookup_ignores_case(self):
        self.r.register("X-Dummy", Dummy)
        self.assertIs(self.r.lookup("x-dummy"), Dummy)
        self.assertIs(self.r.lookup("X-DUMMY"), Dummy)
        self.assertIs(self.r.lookup("plain"), plain.PLAIN)

    def test_get_descriptor_preserves_spelling(self):
        self.r.register("X-Dummy", Dummy)
        self.assertEqual(
            self.r.get_descriptor("X-DUMMY"),
            registry.MechanismDescriptor("X-Dummy", Dummy),
        )

    def test_lookup_unknown(self):
        self.assertIsNone(self.r.lookup("X-UNKNOWN"))
        self.assertIsNone(self.r.get_descriptor("X-UNKNOWN"))
        self.assertNotIn("X-UNKNOWN", self.r)

    def test_lookup_does_not_fold_non_ascii(self):
        self.assertIsNone(self.r.lookup("\u017fCRAM-SHA-1"))
        self.r.register("X-SS", Dummy)
        self.assertIsNone(self.r.lookup("X-\u00df"))

    def test_register_longest_name(self):
        self.r.register("X-" + "A" * 18, Dummy)
        self.assertIs(self.r.lookup("x-" + "a" * 18), Dummy)

    def test_lookup_non_string(self):
        self.assertIsNone(self.r.lookup(None))
        self.assertNotIn(None, self.r)

    def test_register_duplicate(self):
        self.r.register("X-DUMMY", Dummy)
        with self.assertRaises(errors.DuplicateMechanismError) as ctx:
            self.r.register("x-dummy", plain.PLAIN)
        self.assertEqual(ctx.exception.name, "x-dummy")
        self.assertIs(self.r.lookup("X-DUMMY"), Dummy)

    def test_register_builtin_name(self):
        with self.assertRaises(errors.DuplicateMechanismError):
            self.r.register("scram-sha-1", Dummy)
        self.assertIs(self.r.lookup("SCRAM-SHA-1"), scram.SCRAM)

    def test_register_invalid_name(self):
        for name in ["", "  ", None, 123,
                     "X DUMMY", "X-\u00df", "X-" + "A" * 19]:
            with self.assertRaises(errors.InvalidArgumentError):
                self.r.register(name, Dummy)
        self.assertEqual(len(self.r), 3)

    def test_register_non_callable(self):
        with self.assertRaises(errors.InvalidArgumentError):
            self.r.register("X-DUMMY", None)
        with self.assertRaises(errors.InvalidArgumentError):
            self.r.register("X-DUMMY", "not callable")
        self.assertNotIn("X-DUMMY", self.r)

    def test_register_non_mechanism_class(self):
        with self.assertRaises(errors.InvalidArgumentError):
            self.r.register("X-DUMMY", dict)
        self.assertNotIn("X-DUMMY", self.r)

    def test_register_factory_function(self):
        constructor = functools.partial(scram.SCRAM, hash_algo="SHA-256")
        self.r.register("SCRAM-SHA-256", constructor)
        self.assertIs(self.r.lookup("scram-sha-256"), constructor)

    def test_registries_are_independent(self):
        self.r.register("X-DUMMY", Dummy)
        other = registry.MechanismRegistry()
        self.assertNotIn("X-DUMMY", other)

    def test_concurrent_registration(self):
        names = ["X-MECH-{}".format(i) for i in range(50)]
        failures = []

        def register(name):
            try:
                self.r.register(name, Dummy)
            except errors.DuplicateMechanismError:
                failures.append(name)

        threads = [
            threading.Thread(target=register, args=(name,))
            for name in names + names
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        self.assertCountEqual(failures, names)
        self.assertEqual(len(self.r), 3 + len(names))
