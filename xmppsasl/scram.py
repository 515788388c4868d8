########################################################################
# File name: scram.py
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
"""
:mod:`~xmppsasl.scram` -- The ``SCRAM`` mechanism family
########################################################

Client side of the Salted Challenge Response Authentication Mechanism
(:rfc:`5802`) without channel binding.

.. autoclass:: SCRAM

.. autofunction:: parse_message

.. autofunction:: escape_saslname

.. autofunction:: unescape_saslname
"""
import base64
import binascii
import hashlib
import logging

from aiosasl import stringprep

from . import errors, hashes, mechanism


logger = logging.getLogger(__name__)


def escape_saslname(value):
    """
    Escape ``=`` and ``,`` in a ``saslname`` (:class:`bytes`).
    """
    return value.replace(b"=", b"=3D").replace(b",", b"=2C")


def unescape_saslname(value):
    """
    Reverse :func:`escape_saslname`.

    :raises ValueError: if `value` contains an ``=`` which does not start a
        valid escape sequence.
    """
    parts = value.split(b"=")
    result = [parts[0]]
    for part in parts[1:]:
        if part[:2] == b"2C":
            result.append(b"," + part[2:])
        elif part[:2] == b"3D":
            result.append(b"=" + part[2:])
        else:
            raise ValueError("invalid escape in saslname: {!r}".format(value))
    return b"".join(result)


def parse_message(msg):
    """
    Parse a SCRAM message into ``(key, value)`` pairs, with single-byte
    :class:`bytes` keys.

    The values of the ``n`` and ``a`` attributes are unescaped.

    :raises ValueError: if an attribute is malformed or the message contains
        a mandatory extension (``m``), which is not supported.
    """
    for part in msg.split(b","):
        if len(part) < 2 or part[1:2] != b"=" or not part[:1].isalpha():
            raise ValueError("malformed attribute {!r}".format(part))
        key, value = part[:1], part[2:]
        if key == b"m":
            raise ValueError("unsupported mandatory extension")
        if key in (b"n", b"a"):
            value = unescape_saslname(value)
        yield key, value


class SCRAM(mechanism.Mechanism):
    """
    A member of the ``SCRAM-*`` SASL mechanism family (:rfc:`5802`).

    :param hash_algo: The hash function, as it appears in the mechanism name.
    :type hash_algo: :class:`str`
    :param minimum_iteration_count: Reject server-supplied iteration counts
        below this value with :class:`~.errors.WeakIterationCountError`. Pass
        :data:`None` or ``0`` to accept any positive iteration count.
    :type minimum_iteration_count: :class:`int` or :data:`None`

    The remaining keyword arguments are passed to
    :class:`~.mechanism.Mechanism`.

    The exchange takes two rounds:

    1. :meth:`start` returns the client-first message.
    2. :meth:`step` with the server-first message checks the nonce and the
       iteration count, derives the keys and returns the client-final message
       including the proof.
    3. :meth:`step` with the server-final message verifies the server
       signature. On success, the mechanism is
       :attr:`~.MechanismState.COMPLETED` and the (empty) response must still
       be sent.

    User name and password are prepared with
    :func:`aiosasl.stringprep.saslprep`.
    """

    NAME = "SCRAM-SHA-1"

    DEFAULT_MINIMUM_ITERATION_COUNT = 4096

    NONCE_LENGTH = 18

    def __init__(self, *,
                 hash_algo="SHA-1",
                 minimum_iteration_count=DEFAULT_MINIMUM_ITERATION_COUNT,
                 **kwargs):
        super().__init__(**kwargs)
        try:
            self._hashfun_name = hashes.hash_from_algo(hash_algo)
        except (NotImplementedError, ValueError) as exc:
            raise errors.InvalidArgumentError(str(exc)) from exc
        self._hash_algo = hash_algo.upper()
        self.minimum_iteration_count = minimum_iteration_count

        self._gs2_header = None
        self._client_nonce = None
        self._client_first_bare = None
        self._server_key = None
        self._auth_message = None

    @property
    def name(self):
        return "SCRAM-{}".format(self._hash_algo)

    def _hmac(self, key, msg):
        return hashes.hmac_digest(self._hashfun_name, key, msg)

    def _start(self):
        self._require_credentials("username", "password")
        logger.info("attempting %s mechanism", self.name)

        try:
            username = stringprep.saslprep(self.username,
                                           allow_unassigned=True)
        except ValueError as exc:
            raise errors.InvalidArgumentError(
                "user name rejected by SASLprep: {}".format(exc)
            ) from exc

        gs2_header = b"n,"
        if self.authzid:
            gs2_header += b"a=" + escape_saslname(
                self.authzid.encode("utf-8")
            )
        gs2_header += b","

        self._gs2_header = gs2_header
        self._client_nonce = hashes.make_nonce(
            self.NONCE_LENGTH
        ).encode("ascii")
        self._client_first_bare = b"".join([
            b"n=", escape_saslname(username.encode("utf-8")),
            b",r=", self._client_nonce,
        ])

        return self._gs2_header + self._client_first_bare

    def _step(self, server_challenge):
        if self._auth_message is None:
            return self._process_server_first(server_challenge)
        return self._process_server_final(server_challenge)

    def _parse(self, msg):
        try:
            return list(parse_message(msg))
        except ValueError as exc:
            raise self._error(errors.MalformedChallengeError,
                              str(exc)) from exc

    def _check_iteration_count(self, raw):
        if not raw.isdigit():
            raise self._error(
                errors.MalformedChallengeError,
                "iteration count {!r} is not a number".format(raw),
            )

        iterations = int(raw)
        if iterations < 1:
            raise self._error(errors.MalformedChallengeError,
                              "iteration count must be positive")

        minimum = self.minimum_iteration_count
        if minimum and iterations < minimum:
            logger.warning("server asked for %d iterations, minimum is %d",
                           iterations, minimum)
            raise self._error(
                errors.WeakIterationCountError,
                "{} iterations requested, at least {} required".format(
                    iterations, minimum),
                iteration_count=iterations,
            )

        return iterations

    def _process_server_first(self, server_first):
        attrs = self._parse(server_first)
        if [key for key, _ in attrs[:3]] != [b"r", b"s", b"i"]:
            raise self._error(
                errors.MalformedChallengeError,
                "server-first message must start with r, s and i",
            )
        (_, nonce), (_, salt), (_, raw_iterations) = attrs[:3]

        if (not nonce.startswith(self._client_nonce) or
                len(nonce) <= len(self._client_nonce)):
            logger.warning("server nonce does not extend client nonce")
            raise self._error(
                errors.NonceMismatchError,
                "server nonce does not extend the client nonce",
            )

        try:
            salt = base64.b64decode(salt, validate=True)
        except binascii.Error as exc:
            raise self._error(errors.MalformedChallengeError,
                              "salt is not valid base64") from exc

        iterations = self._check_iteration_count(raw_iterations)

        try:
            password = stringprep.saslprep(self.password,
                                           allow_unassigned=True)
        except ValueError as exc:
            raise errors.InvalidArgumentError(
                "password rejected by SASLprep: {}".format(exc)
            ) from exc

        salted_password = hashes.pbkdf2(
            self._hashfun_name,
            password.encode("utf-8"),
            salt,
            iterations,
        )
        client_key = self._hmac(salted_password, b"Client Key")
        stored_key = hashlib.new(self._hashfun_name, client_key).digest()

        client_final_without_proof = b"".join([
            b"c=", base64.b64encode(self._gs2_header),
            b",r=", nonce,
        ])
        auth_message = b",".join([
            self._client_first_bare,
            server_first,
            client_final_without_proof,
        ])

        client_signature = self._hmac(stored_key, auth_message)
        client_proof = hashes.xor_bytes(client_key, client_signature)

        self._server_key = self._hmac(salted_password, b"Server Key")
        self._auth_message = auth_message

        return b"".join([
            client_final_without_proof,
            b",p=", base64.b64encode(client_proof),
        ])

    def _process_server_final(self, server_final):
        attrs = self._parse(server_final)
        key, value = attrs[0]

        if key == b"e":
            raise self._error(
                errors.ServerVerificationError,
                "server reported error: {}".format(
                    value.decode("utf-8", errors="replace")),
            )

        if key != b"v":
            raise self._error(errors.MalformedChallengeError,
                              "server-final message lacks verifier")

        try:
            server_signature = base64.b64decode(value, validate=True)
        except binascii.Error as exc:
            raise self._error(errors.MalformedChallengeError,
                              "verifier is not valid base64") from exc

        expected = self._hmac(self._server_key, self._auth_message)
        if not hashes.constant_time_equal(server_signature, expected):
            logger.warning("%s server signature mismatch", self.name)
            raise self._error(errors.ServerVerificationError,
                              "server signature does not match")

        self._complete()
        return b""
